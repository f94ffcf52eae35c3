# File: services/open_transaction.py
# 功能：开瓶事务管理
# 实现：在同一个数据库事务里完成 归属检查→独占检查→每日限额检查→写日记→写开瓶记录

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import now_local
from database_models import SessionLocal, User, Bottle, BottleOpen, JournalEntry
from services.errors import (
    BottleServiceError, NotFoundError, ForbiddenError, ConflictError, ValidationError, InternalError,
)
from services.role_policy import RolePolicy, RolePolicyTable

logger = logging.getLogger(__name__)

ALREADY_OPENED_MESSAGE = "这个瓶子已经打开过了"
DAILY_LIMIT_MESSAGE = "每天只能打开一个瓶子"


class OpenState(enum.Enum):
    NEW = "new"
    OWNERSHIP_CHECKED = "ownership_checked"
    EXCLUSIVITY_CHECKED = "exclusivity_checked"
    RATE_LIMIT_CHECKED = "rate_limit_checked"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass
class OpenResult:
    bottle_id: int
    name: str
    content: Dict[str, Any]
    opened_at: datetime
    journal_id: int


def day_bounds(moment: datetime):
    """moment 所在自然日的 [00:00, 次日00:00)"""
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def has_opened_today(db: Session, user_id: int, now: datetime) -> bool:
    start, end = day_bounds(now)
    return db.query(BottleOpen.id).filter(
        BottleOpen.user_id == user_id,
        BottleOpen.opened_at >= start,
        BottleOpen.opened_at < end,
    ).first() is not None


def _is_bottle_user_conflict(error: IntegrityError) -> bool:
    text = str(error.orig)
    return "uq_bottle_opens_bottle_user" in text or "bottle_opens.bottle_id, bottle_opens.user_id" in text


class OpenTransactionManager:
    """
    开瓶事务管理器

    说明：
        - 角色规则（是否校验收瓶人、是否预检重复开瓶、是否每日限额）只查一次 RolePolicyTable
        - 任一检查失败都回滚，不留下任何日记或开瓶记录
        - (bottle, user) 唯一约束在并发下兜底，冲突时同样返回“已打开过”
    """

    def __init__(self, session_factory=SessionLocal, policies: Optional[RolePolicyTable] = None,
                 clock: Callable[[], datetime] = now_local):
        self.session_factory = session_factory
        self.policies = policies or RolePolicyTable()
        self.clock = clock

    def open_bottle(self, user_id: int, journal_text: str, bottle_id: int,
                    check_assignment: bool = True) -> OpenResult:
        """
        写日记并打开指定瓶子

        参数：
            user_id (int): 开瓶用户
            journal_text (str): 日记正文
            bottle_id (int): 目标瓶子
            check_assignment (bool): 是否按角色规则校验收瓶人（全局模式下为 False）

        异常：
            NotFoundError / ForbiddenError / ConflictError / InternalError
        """
        if not journal_text or not journal_text.strip():
            raise ValidationError("日记内容不能为空")

        state = OpenState.NEW
        db: Session = self.session_factory()
        try:
            # 锁住用户行（SQLite 下由 BEGIN IMMEDIATE 保证）
            user = db.query(User).filter(User.id == user_id).with_for_update().first()
            if not user:
                raise NotFoundError("用户不存在")
            policy = self.policies.for_user(user)

            bottle = db.get(Bottle, bottle_id)
            if not bottle:
                raise NotFoundError("瓶子不存在")
            if check_assignment and policy.require_assignment and bottle.assigned_viewer_id != user.id:
                raise ForbiddenError("你无权打开这个瓶子")
            state = OpenState.OWNERSHIP_CHECKED

            if policy.enforce_exclusivity:
                existing = db.query(BottleOpen.id).filter(
                    BottleOpen.bottle_id == bottle_id, BottleOpen.user_id == user_id
                ).first()
                if existing:
                    raise ConflictError(ALREADY_OPENED_MESSAGE, ConflictError.ALREADY_OPENED)
            state = OpenState.EXCLUSIVITY_CHECKED

            now = self.clock()
            if policy.enforce_daily_limit and has_opened_today(db, user_id, now):
                raise ConflictError(DAILY_LIMIT_MESSAGE, ConflictError.DAILY_LIMIT)
            state = OpenState.RATE_LIMIT_CHECKED

            journal = JournalEntry(user_id=user_id, entry=journal_text, created_at=now)
            db.add(journal)
            db.flush()

            bottle_open = BottleOpen(bottle_id=bottle_id, user_id=user_id,
                                     journal_entry_id=journal.id, opened_at=now)
            db.add(bottle_open)
            db.flush()
            db.commit()
            state = OpenState.COMMITTED

            logger.info(f"✅ 开瓶成功: user={user_id}, bottle={bottle_id}, journal={journal.id}")
            return OpenResult(bottle_id=bottle.id, name=bottle.name, content=bottle.content,
                              opened_at=bottle_open.opened_at, journal_id=journal.id)

        except BottleServiceError as e:
            db.rollback()
            logger.info(f"🚫 开瓶被拒绝: user={user_id}, bottle={bottle_id}, 阶段={state.value}, 原因={e.message}")
            raise
        except IntegrityError as e:
            db.rollback()
            if _is_bottle_user_conflict(e):
                logger.warning(f"⚠️ 并发开瓶被唯一约束拦截: user={user_id}, bottle={bottle_id}")
                raise ConflictError(ALREADY_OPENED_MESSAGE, ConflictError.ALREADY_OPENED)
            logger.error(f"❌ 开瓶写入失败: {e}")
            raise InternalError("开瓶失败，请稍后再试")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ 开瓶写入失败: {e}")
            raise InternalError("开瓶失败，请稍后再试")
        finally:
            db.close()

    def record_journal(self, user_id: int, journal_text: str) -> int:
        """只写日记，不开瓶；返回日记ID"""
        if not journal_text or not journal_text.strip():
            raise ValidationError("日记内容不能为空")

        db: Session = self.session_factory()
        try:
            journal = JournalEntry(user_id=user_id, entry=journal_text, created_at=self.clock())
            db.add(journal)
            db.commit()
            logger.info(f"✅ 日记已保存 ID={journal.id}")
            return journal.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ 保存日记失败：{e}")
            raise InternalError("保存日记失败")
        finally:
            db.close()

    def policy_for(self, user_id: int) -> RolePolicy:
        db: Session = self.session_factory()
        try:
            user = db.get(User, user_id)
            if not user:
                raise NotFoundError("用户不存在")
            return self.policies.for_user(user)
        finally:
            db.close()

    def opened_today(self, user_id: int) -> bool:
        db: Session = self.session_factory()
        try:
            return has_opened_today(db, user_id, self.clock())
        finally:
            db.close()
