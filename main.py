# File: main.py
# 功能：漂流瓶服务的主应用入口
# 包含：FastAPI 应用、用户认证、日记提交、开瓶、漂流瓶管理、私密媒体授权等API

import base64
import binascii
import logging
from functools import lru_cache
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Depends, Header, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import MOOD_BACKFILL_HOUR, ASSIGNMENT_AWARE
from database_models import init_db, SessionLocal, User
from database_models.schemas import (
    CreateBottleRequest, SubmitJournalRequest, OpenBottleRequest, GrantAccessRequest,
    AccessGrantResponse, UploadMediaRequest,
)
from llm.bottle_oracle import BottleOracle
from llm.qwen_embedding import QwenEmbeddingModel
from llm.qwen_llm import QwenLLM
from services.access_grants import AccessGrantStore
from services.auth import decode_access_token
from services.bottle_selector import BottleSelector
from services.bottle_service import BottleService
from services.candidate_retriever import CandidateRetriever
from services.errors import BottleServiceError, ValidationError
from services.journal_service import JournalService, list_journals, delete_journal
from services.media_service import LocalMediaGateway, MediaService
from services.open_transaction import OpenTransactionManager

# ==================== 日志 ====================
for h in logging.root.handlers[:]:
    logging.root.removeHandler(h)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

# ==================== FastAPI 初始化 ====================
app = FastAPI(title="Drift Bottle Service")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产请限制域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

scheduler = BackgroundScheduler()


@app.exception_handler(BottleServiceError)
def handle_service_error(request: Request, exc: BottleServiceError):
    body: Dict[str, Any] = {"detail": exc.message}
    reason = getattr(exc, "reason", None)
    if reason:
        body["reason"] = reason
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} 失败: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=body)


# ==================== 依赖 ====================
def get_session_factory():
    return SessionLocal


@lru_cache()
def get_embedder() -> QwenEmbeddingModel:
    return QwenEmbeddingModel()


@lru_cache()
def get_oracle() -> BottleOracle:
    return BottleOracle(QwenLLM())


@lru_cache()
def get_media_gateway() -> LocalMediaGateway:
    return LocalMediaGateway()


def get_transactions(session_factory=Depends(get_session_factory)) -> OpenTransactionManager:
    return OpenTransactionManager(session_factory)


def get_journal_service(
    session_factory=Depends(get_session_factory),
    embedder=Depends(get_embedder),
    oracle=Depends(get_oracle),
    transactions: OpenTransactionManager = Depends(get_transactions),
) -> JournalService:
    retriever = CandidateRetriever(assignment_aware=ASSIGNMENT_AWARE)
    selector = BottleSelector(embedder, oracle, retriever, session_factory=session_factory)
    return JournalService(selector, transactions)


def get_bottle_service(
    session_factory=Depends(get_session_factory),
    embedder=Depends(get_embedder),
    oracle=Depends(get_oracle),
) -> BottleService:
    return BottleService(oracle, embedder, session_factory, assignment_aware=ASSIGNMENT_AWARE)


def get_grant_store(session_factory=Depends(get_session_factory)) -> AccessGrantStore:
    return AccessGrantStore(session_factory)


def get_media_service(
    session_factory=Depends(get_session_factory),
    grants: AccessGrantStore = Depends(get_grant_store),
    gateway: LocalMediaGateway = Depends(get_media_gateway),
) -> MediaService:
    return MediaService(grants, gateway, session_factory)


# ==================== JWT 认证 ====================
def get_current_user(authorization: str = Header(..., alias="Authorization")) -> int:
    # 支持 "Bearer <token>" 格式
    token = authorization[7:] if authorization.startswith("Bearer ") else authorization
    user_id = decode_access_token(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="无效或过期的 Token")
    return user_id


def require_admin(user_id: int = Depends(get_current_user),
                  session_factory=Depends(get_session_factory)) -> int:
    db = session_factory()
    try:
        user = db.get(User, user_id)
    finally:
        db.close()
    if not user:
        raise HTTPException(status_code=401, detail="用户不存在")
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="需要管理员权限")
    return user_id


# ==================== 定时任务 ====================
def backfill_bottle_moods():
    try:
        logging.info("🕓 开始执行：补全漂流瓶心情描述")
        service = BottleService(get_oracle(), get_embedder(), assignment_aware=ASSIGNMENT_AWARE)
        service.backfill_moods()
    except Exception as e:
        logging.error(f"❌ 心情补全任务异常：{e}")


def start_mood_backfill_scheduler():
    try:
        scheduler.add_job(
            func=backfill_bottle_moods,
            trigger=CronTrigger(hour=MOOD_BACKFILL_HOUR, minute=0),
            id="mood_backfill_job",
            name="每日补全漂流瓶心情描述",
            replace_existing=True,
        )
        scheduler.start()
        logging.info(f"✅ 心情补全任务已启动：每天{MOOD_BACKFILL_HOUR:02d}:00执行")
    except Exception as e:
        logging.error(f"❌ 启动定时任务失败：{e}")


@app.on_event("startup")
def on_startup():
    init_db()
    start_mood_backfill_scheduler()


@app.on_event("shutdown")
def on_shutdown():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logging.info("🛑 定时任务已停止")


# ==================== 用户 ====================
def _user_to_dict(user: User) -> Dict[str, Any]:
    return {"id": user.id, "email": user.email, "is_admin": user.is_admin}


@app.get("/auth/me")
def get_me(user_id: int = Depends(get_current_user),
           session_factory=Depends(get_session_factory)) -> Dict[str, Any]:
    """当前登录用户的身份和角色"""
    db = session_factory()
    try:
        user = db.get(User, user_id)
        if not user:
            raise HTTPException(status_code=401, detail="用户不存在")
        return _user_to_dict(user)
    finally:
        db.close()


@app.get("/users")
def get_users(admin_id: int = Depends(require_admin),
              session_factory=Depends(get_session_factory)) -> Dict[str, Any]:
    """用户列表（管理员装瓶时选择收瓶人用），按邮箱排序"""
    db = session_factory()
    try:
        users = db.query(User).order_by(User.email).all()
        return {"status": "success", "users": [_user_to_dict(u) for u in users]}
    finally:
        db.close()


# ==================== 健康检查 ====================
@app.get("/")
def read_root():
    return {"message": "漂流瓶服务运行中"}


# ==================== 日记 ====================
@app.post("/journal/submit")
def submit_journal(request: SubmitJournalRequest, user_id: int = Depends(get_current_user),
                   service: JournalService = Depends(get_journal_service)) -> Dict[str, Any]:
    """
    提交日记
    有可开的瓶子时同时开瓶，否则只保存日记
    """
    result = service.submit(user_id, request.entry)
    return {"status": "success", **result.to_dict()}


@app.get("/journal/list")
def get_journal_list(user_id: int = Depends(get_current_user),
                     session_factory=Depends(get_session_factory)) -> Dict[str, Any]:
    journals = list_journals(user_id, session_factory)
    return {"status": "success", "journals": journals, "total": len(journals)}


@app.delete("/journal/{journal_id}")
def remove_journal(journal_id: int, user_id: int = Depends(get_current_user),
                   session_factory=Depends(get_session_factory)) -> Dict[str, Any]:
    delete_journal(user_id, journal_id, session_factory)
    return {"status": "success", "message": "日记删除成功"}


# ==================== 漂流瓶 ====================
@app.post("/bottles/open")
def open_bottle(request: OpenBottleRequest, user_id: int = Depends(get_current_user),
                transactions: OpenTransactionManager = Depends(get_transactions)) -> Dict[str, Any]:
    """
    直接打开指定的瓶子（写日记 + 开瓶记录在同一事务里）
    """
    opened = transactions.open_bottle(user_id, request.entry, request.bottle_id,
                                      check_assignment=ASSIGNMENT_AWARE)
    return {
        "status": "success",
        "bottle_id": opened.bottle_id,
        "name": opened.name,
        "content": opened.content,
        "opened_at": opened.opened_at,
        "journal_id": opened.journal_id,
    }


@app.get("/bottles")
def get_bottles(user_id: int = Depends(get_current_user),
                service: BottleService = Depends(get_bottle_service)) -> Dict[str, Any]:
    return {"status": "success", **service.list_bottles(user_id)}


@app.get("/bottles/{bottle_id}")
def get_bottle(bottle_id: int, user_id: int = Depends(get_current_user),
               service: BottleService = Depends(get_bottle_service)) -> Dict[str, Any]:
    return {"status": "success", "bottle": service.get_bottle(user_id, bottle_id)}


@app.post("/admin/bottles")
def create_bottle(request: CreateBottleRequest, admin_id: int = Depends(require_admin),
                  service: BottleService = Depends(get_bottle_service)) -> Dict[str, Any]:
    bottle = service.create_bottle(admin_id, request)
    return {"status": "success", "bottle": bottle}


# ==================== 私密媒体 ====================
@app.post("/media/upload")
def upload_media(request: UploadMediaRequest, admin_id: int = Depends(require_admin),
                 service: MediaService = Depends(get_media_service)) -> Dict[str, Any]:
    try:
        raw = request.data.split(",")[1] if "," in request.data else request.data
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("文件内容不是合法的Base64")
    logging.info(f"📷 媒体上传: admin={admin_id}, filename={request.filename}, 大小={len(data)} bytes")
    media = service.upload(admin_id, data, request.filename, request.content_type)
    return {"status": "success", "media": media}


@app.get("/media/{media_id}")
def get_media(media_id: str, user_id: int = Depends(get_current_user),
              service: MediaService = Depends(get_media_service)):
    payload = service.fetch(media_id, user_id)
    return Response(
        content=payload.data,
        media_type=payload.content_type,
        headers={
            "Cache-Control": "private",
            "Content-Disposition": "inline",
        },
    )


@app.post("/media/{media_id}/grant-access", response_model=AccessGrantResponse)
def grant_media_access(media_id: str, request: GrantAccessRequest, admin_id: int = Depends(require_admin),
                       grants: AccessGrantStore = Depends(get_grant_store)):
    logging.info(f"🔑 授权: admin={admin_id}, media={media_id}, user={request.user_id}")
    return grants.grant(media_id, request.user_id, request.max_views, request.expires_at)


@app.delete("/media/{media_id}/grant-access/{target_user_id}")
def revoke_media_access(media_id: str, target_user_id: int, admin_id: int = Depends(require_admin),
                        grants: AccessGrantStore = Depends(get_grant_store)) -> Dict[str, Any]:
    grants.revoke(media_id, target_user_id)
    return {"status": "success", "message": "授权已撤销"}


@app.get("/media/{media_id}/access", response_model=List[AccessGrantResponse])
def list_media_access(media_id: str, admin_id: int = Depends(require_admin),
                      grants: AccessGrantStore = Depends(get_grant_store)):
    return grants.list_grants(media_id)
