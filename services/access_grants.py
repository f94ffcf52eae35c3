# File: services/access_grants.py
# 功能：私密媒体访问授权
# 实现：授权按 (媒体, 用户) 唯一；查看计数用一条带条件的 UPDATE 原子递增

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from config import now_local, to_local_naive
from database_models import SessionLocal, AccessGrant, MediaObject, User
from services.errors import AccessGoneError, ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# 拒绝原因，按判定顺序排列
NO_ACCESS_GRANTED = "no access granted"
ACCESS_EXPIRED = "access expired"
MAX_VIEWS_EXCEEDED = "maximum views exceeded"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None


ALLOWED = AccessDecision(allowed=True)


def evaluate_grant(grant: Optional[AccessGrant], now: datetime) -> AccessDecision:
    """
    判定一条授权此刻是否可用

    顺序：
        1. 没有授权 → no access granted
        2. 过期时间早于现在 → access expired
        3. 有次数上限且已用完 → maximum views exceeded
    """
    if grant is None:
        return AccessDecision(False, NO_ACCESS_GRANTED)
    if grant.expires_at is not None and grant.expires_at < now:
        return AccessDecision(False, ACCESS_EXPIRED)
    if grant.max_views is not None and grant.access_count >= grant.max_views:
        return AccessDecision(False, MAX_VIEWS_EXCEEDED)
    return ALLOWED


def raise_for_decision(decision: AccessDecision) -> None:
    """把拒绝结果转成错误：没有授权 → 403；过期或次数用完 → 410"""
    if decision.allowed:
        return
    if decision.reason == NO_ACCESS_GRANTED:
        raise ForbiddenError("没有访问权限", reason=decision.reason)
    raise AccessGoneError("访问权限已失效", reason=decision.reason)


def grant_to_dict(grant: AccessGrant) -> Dict[str, Any]:
    return {
        "media_id": grant.media_id,
        "user_id": grant.user_id,
        "email": grant.user.email if grant.user else None,
        "access_count": grant.access_count,
        "max_views": grant.max_views,
        "expires_at": grant.expires_at,
    }


class AccessGrantStore:
    """
    访问授权存储

    主要方法：
    - grant: 新建或更新授权上限，不改动已有计数
    - check: 只读判定
    - record_view: 条件递增计数，返回是否成功
    - consume: 递增成功即放行，否则给出拒绝原因
    - revoke: 删除授权
    - list_grants: 某个媒体的全部授权
    """

    def __init__(self, session_factory=SessionLocal, clock: Callable[[], datetime] = now_local):
        self.session_factory = session_factory
        self.clock = clock

    def _get(self, db: Session, media_id: str, user_id: int) -> Optional[AccessGrant]:
        return db.query(AccessGrant).filter(
            AccessGrant.media_id == media_id, AccessGrant.user_id == user_id
        ).first()

    def grant(self, media_id: str, user_id: int, max_views: Optional[int] = None,
              expires_at: Optional[datetime] = None) -> Dict[str, Any]:
        """
        授权（幂等 upsert）

        参数：
            media_id (str): 媒体ID
            user_id (int): 被授权用户
            max_views (int): 最多查看次数，None 表示不限
            expires_at (datetime): 过期时间，None 表示永不过期

        返回：
            Dict: 当前保存的上限与计数
        """
        if max_views is not None and max_views < 1:
            raise ValidationError("max_views 必须是正整数")
        if expires_at is not None:
            expires_at = to_local_naive(expires_at)

        db: Session = self.session_factory()
        try:
            if not db.get(MediaObject, media_id):
                raise NotFoundError("媒体不存在")
            if not db.get(User, user_id):
                raise NotFoundError("用户不存在")

            grant = self._get(db, media_id, user_id)
            if grant is None:
                grant = AccessGrant(media_id=media_id, user_id=user_id, access_count=0,
                                    max_views=max_views, expires_at=expires_at)
                db.add(grant)
                try:
                    db.commit()
                except IntegrityError:
                    # 并发授权已先插入，改为更新
                    db.rollback()
                    grant = self._get(db, media_id, user_id)
                    grant.max_views = max_views
                    grant.expires_at = expires_at
                    db.commit()
            else:
                grant.max_views = max_views
                grant.expires_at = expires_at
                db.commit()

            db.refresh(grant)
            logger.info(f"✅ 授权已保存: media={media_id}, user={user_id}, max_views={max_views}, expires_at={expires_at}")
            return grant_to_dict(grant)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def check(self, media_id: str, user_id: int) -> AccessDecision:
        db: Session = self.session_factory()
        try:
            return evaluate_grant(self._get(db, media_id, user_id), self.clock())
        finally:
            db.close()

    def record_view(self, media_id: str, user_id: int) -> bool:
        """
        记录一次查看

        说明：
            只有在次数未用完、且未过期时才会把计数 +1，判定和递增在同一条语句里完成，
            并发请求不会超出上限

        返回：
            bool: 是否成功递增
        """
        now = self.clock()
        stmt = (
            update(AccessGrant)
            .where(
                AccessGrant.media_id == media_id,
                AccessGrant.user_id == user_id,
                or_(AccessGrant.max_views.is_(None), AccessGrant.access_count < AccessGrant.max_views),
                or_(AccessGrant.expires_at.is_(None), AccessGrant.expires_at >= now),
            )
            .values(access_count=AccessGrant.access_count + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        db: Session = self.session_factory()
        try:
            result = db.execute(stmt)
            db.commit()
            return result.rowcount == 1
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def consume(self, media_id: str, user_id: int) -> AccessDecision:
        """查看媒体时调用：递增成功即放行，否则返回拒绝原因"""
        if self.record_view(media_id, user_id):
            return ALLOWED
        decision = self.check(media_id, user_id)
        if decision.allowed:
            # 递增失败后又判定为可用，只可能是并发下最后一次额度被别的请求用掉
            decision = AccessDecision(False, MAX_VIEWS_EXCEEDED)
        logger.info(f"🚫 媒体访问被拒绝: media={media_id}, user={user_id}, 原因={decision.reason}")
        return decision

    def revoke(self, media_id: str, user_id: int) -> None:
        db: Session = self.session_factory()
        try:
            grant = self._get(db, media_id, user_id)
            if grant is None:
                raise NotFoundError("授权不存在")
            db.delete(grant)
            db.commit()
            logger.info(f"🗑️ 撤销授权: media={media_id}, user={user_id}")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_grants(self, media_id: str) -> List[Dict[str, Any]]:
        db: Session = self.session_factory()
        try:
            if not db.get(MediaObject, media_id):
                raise NotFoundError("媒体不存在")
            grants = (
                db.query(AccessGrant)
                .options(joinedload(AccessGrant.user))
                .filter(AccessGrant.media_id == media_id)
                .order_by(AccessGrant.user_id)
                .all()
            )
            return [grant_to_dict(g) for g in grants]
        finally:
            db.close()
