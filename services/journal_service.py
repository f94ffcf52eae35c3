# File: services/journal_service.py
# 功能：日记提交、列表与删除
# 实现：提交日记时串起 选瓶 → 开瓶事务；没有瓶子可开时只保存日记

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from database_models import SessionLocal, JournalEntry, BottleOpen
from services.bottle_selector import BottleSelector
from services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from services.open_transaction import OpenResult, OpenTransactionManager

logger = logging.getLogger(__name__)

MESSAGE_OPENED = "日记已保存，漂流瓶已打开！"
MESSAGE_DAILY_LIMIT = "日记已保存。你今天已经打开过一个瓶子了。"
MESSAGE_NO_BOTTLES = "日记已保存。暂时没有可以打开的瓶子。"
MESSAGE_ALREADY_OPENED = "日记已保存。这个瓶子已经打开过了。"


@dataclass
class SubmissionResult:
    journal_id: int
    message: str
    opened: Optional[OpenResult] = None
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"journal_id": self.journal_id, "message": self.message}
        if self.opened:
            data.update({
                "bottle_id": self.opened.bottle_id,
                "name": self.opened.name,
                "content": self.opened.content,
                "opened_at": self.opened.opened_at,
            })
        return data


class JournalService:
    """
    日记提交服务
    功能：提交日记并尝试开一瓶
    """

    def __init__(self, selector: BottleSelector, transactions: OpenTransactionManager):
        self.selector = selector
        self.transactions = transactions

    def submit(self, user_id: int, entry: str) -> SubmissionResult:
        """
        提交日记

        流程：
            1. 受每日限额约束的用户今天已开过 → 只保存日记
            2. 选瓶；没有候选 → 只保存日记
            3. 开瓶事务；事务里遇到并发冲突 → 只保存日记并给出对应提示

        说明：
            向量化/LLM调用失败会直接抛 UpstreamError，不保存日记
        """
        if not entry or not entry.strip():
            raise ValidationError("日记内容不能为空")

        logging.info(f"📝 提交日记：user={user_id}, 长度={len(entry)}")

        policy = self.transactions.policy_for(user_id)
        if policy.enforce_daily_limit and self.transactions.opened_today(user_id):
            journal_id = self.transactions.record_journal(user_id, entry)
            return SubmissionResult(journal_id=journal_id, message=MESSAGE_DAILY_LIMIT)

        selection = self.selector.select(user_id, entry)
        if not selection.has_bottle:
            journal_id = self.transactions.record_journal(user_id, entry)
            return SubmissionResult(journal_id=journal_id, message=MESSAGE_NO_BOTTLES)

        try:
            opened = self.transactions.open_bottle(
                user_id, entry, selection.bottle_id,
                check_assignment=self.selector.retriever.assignment_aware,
            )
        except ConflictError as e:
            # 选瓶和开瓶之间被并发请求抢先，退回到只保存日记
            logger.warning(f"⚠️ 开瓶冲突（{e.reason}），只保存日记: user={user_id}")
            journal_id = self.transactions.record_journal(user_id, entry)
            message = MESSAGE_DAILY_LIMIT if e.reason == ConflictError.DAILY_LIMIT else MESSAGE_ALREADY_OPENED
            return SubmissionResult(journal_id=journal_id, message=message, degraded=selection.degraded)

        return SubmissionResult(journal_id=opened.journal_id, message=MESSAGE_OPENED,
                                opened=opened, degraded=selection.degraded)



def list_journals(user_id: int, session_factory=SessionLocal) -> List[Dict[str, Any]]:
    """本人的日记列表（新的在前），附带开出的瓶子"""
    db: Session = session_factory()
    try:
        entries = (
            db.query(JournalEntry)
            .options(joinedload(JournalEntry.bottle_open).joinedload(BottleOpen.bottle))
            .filter(JournalEntry.user_id == user_id)
            .order_by(JournalEntry.created_at.desc(), JournalEntry.id.desc())
            .all()
        )
        result = []
        for j in entries:
            bottle = None
            if j.bottle_open:
                bottle = {"id": j.bottle_open.bottle.id, "name": j.bottle_open.bottle.name,
                          "opened_at": j.bottle_open.opened_at}
            result.append({"id": j.id, "entry": j.entry, "created_at": j.created_at, "bottle": bottle})
        return result
    finally:
        db.close()


def delete_journal(user_id: int, journal_id: int, session_factory=SessionLocal) -> None:
    """删除日记（级联删除开瓶记录），只有本人可以删"""
    db: Session = session_factory()
    try:
        journal = db.get(JournalEntry, journal_id)
        if not journal:
            raise NotFoundError("日记不存在")
        if journal.user_id != user_id:
            raise ForbiddenError("只能删除自己的日记")
        db.delete(journal)
        db.commit()
        logging.info(f"🗑️ 删除日记: user={user_id}, journal={journal_id}")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
