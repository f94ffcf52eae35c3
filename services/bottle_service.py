# File: services/bottle_service.py
# 功能：漂流瓶的创建、列表、详情与心情补全
# 实现：创建时用LLM生成心情描述并向量化；定时任务补全缺失心情的瓶子

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from database_models import SessionLocal, User, Bottle, BottleOpen
from database_models.schemas import CreateBottleRequest
from services.errors import ForbiddenError, NotFoundError, UpstreamError

logger = logging.getLogger(__name__)


class BottleService:
    """
    漂流瓶服务

    依赖（构造时注入）：
        - oracle: 提供 generate_mood(content, description)
        - embedder: 提供 embed_query(text)
    """

    def __init__(self, oracle, embedder, session_factory=SessionLocal, assignment_aware: bool = True):
        self.oracle = oracle
        self.embedder = embedder
        self.session_factory = session_factory
        self.assignment_aware = assignment_aware

    def _mood_and_embedding(self, content: Dict[str, Any], description: Optional[str]):
        mood = self.oracle.generate_mood(content, description)
        return mood, self.embedder.embed_query(mood)

    def create_bottle(self, creator_id: int, request: CreateBottleRequest) -> Dict[str, Any]:
        """
        创建漂流瓶（管理员）

        流程：
            1. 校验收瓶人存在
            2. 生成心情描述和心情向量（失败则不创建）
            3. 保存
        """
        db: Session = self.session_factory()
        try:
            if not db.get(User, request.assigned_viewer_id):
                raise NotFoundError("指定的收瓶人不存在")

            content = request.content.model_dump(exclude_none=True)
            mood, embedding = self._mood_and_embedding(content, request.description)

            bottle = Bottle(
                name=request.name,
                content=content,
                description=request.description,
                mood=mood,
                assigned_viewer_id=request.assigned_viewer_id,
                created_by_id=creator_id,
            )
            bottle.set_embedding(embedding)
            db.add(bottle)
            db.commit()
            logger.info(f"✅ 漂流瓶已创建: id={bottle.id}, name={bottle.name}")
            return {"id": bottle.id, "name": bottle.name, "mood": bottle.mood, "created_at": bottle.created_at}
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_bottles(self, user_id: int) -> Dict[str, Any]:
        """管理员看到全部瓶子及开启情况；普通用户只看到自己还没开的瓶子"""
        db: Session = self.session_factory()
        try:
            user = db.get(User, user_id)
            if not user:
                raise NotFoundError("用户不存在")

            if user.is_admin:
                bottles = (
                    db.query(Bottle)
                    .options(joinedload(Bottle.opens).joinedload(BottleOpen.user))
                    .order_by(Bottle.created_at.desc(), Bottle.id.desc())
                    .all()
                )
                items = [{
                    "id": b.id,
                    "name": b.name,
                    "mood": b.mood,
                    "assigned_viewer_id": b.assigned_viewer_id,
                    "created_at": b.created_at,
                    "opens": [{"user_id": o.user_id, "email": o.user.email, "opened_at": o.opened_at} for o in b.opens],
                } for b in bottles]
                return {
                    "total_count": len(items),
                    "opened_count": sum(1 for b in items if b["opens"]),
                    "bottles": items,
                }

            opened_ids = select(BottleOpen.bottle_id).where(BottleOpen.user_id == user_id)
            query = db.query(Bottle).filter(Bottle.id.notin_(opened_ids))
            if self.assignment_aware:
                query = query.filter(Bottle.assigned_viewer_id == user_id)
            bottles = query.order_by(Bottle.created_at.asc(), Bottle.id.asc()).all()
            return {
                "unopened_count": len(bottles),
                "bottles": [{"id": b.id, "name": b.name, "created_at": b.created_at} for b in bottles],
            }
        finally:
            db.close()

    def get_bottle(self, user_id: int, bottle_id: int) -> Dict[str, Any]:
        """瓶子详情：管理员或已经打开过它的用户可见"""
        db: Session = self.session_factory()
        try:
            user = db.get(User, user_id)
            if not user:
                raise NotFoundError("用户不存在")
            bottle = db.get(Bottle, bottle_id)
            if not bottle:
                raise NotFoundError("瓶子不存在")

            if not user.is_admin:
                opened = db.query(BottleOpen.id).filter(
                    BottleOpen.bottle_id == bottle_id, BottleOpen.user_id == user_id
                ).first()
                if not opened:
                    raise ForbiddenError("你还没有打开这个瓶子")

            return {"id": bottle.id, "name": bottle.name, "content": bottle.content, "created_at": bottle.created_at}
        finally:
            db.close()

    def backfill_moods(self) -> int:
        """
        补全缺少心情描述或心情向量的瓶子

        返回：
            int: 成功补全的数量
        """
        db: Session = self.session_factory()
        try:
            pending = db.query(Bottle).filter(
                or_(Bottle.mood.is_(None), Bottle.mood_embedding.is_(None))
            ).order_by(Bottle.id).all()
            if not pending:
                logger.info("✅ 所有瓶子都有心情描述，无需补全")
                return 0

            done = 0
            for bottle in pending:
                try:
                    if bottle.mood:
                        bottle.set_embedding(self.embedder.embed_query(bottle.mood))
                    else:
                        mood, embedding = self._mood_and_embedding(bottle.content, bottle.description)
                        bottle.mood = mood
                        bottle.set_embedding(embedding)
                    db.commit()
                    done += 1
                except UpstreamError as e:
                    db.rollback()
                    logger.error(f"❌ 瓶子 {bottle.id} 心情补全失败: {e}")

            logger.info(f"✅ 心情补全完成: 成功 {done} 个，失败 {len(pending) - done} 个")
            return done
        finally:
            db.close()
