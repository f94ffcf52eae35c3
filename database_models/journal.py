# File: database_models/journal.py
# 功能：日记数据模型定义
# 实现：使用SQLAlchemy ORM，存储用户提交的日记原文

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from config import now_local
from .database import Base

# ==================== 日记模型 ====================
class JournalEntry(Base):
    """
    日记数据模型
    功能：每次提交生成一篇日记，创建后不再修改，只有本人可以删除

    字段说明：
        - id: 主键，日记唯一标识
        - user_id: 外键，关联用户ID
        - entry: 日记正文
        - created_at: 提交时间
        - bottle_open: 这篇日记触发的开瓶记录（可能没有）
    """
    __tablename__ = "journal_entries"  # 数据库表名

    id = Column(Integer, primary_key=True, index=True)  # 日记ID，主键，建立索引
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # 用户ID，外键
    entry = Column(Text, nullable=False)  # 日记正文，不可为空
    created_at = Column(DateTime, default=now_local, nullable=False)  # 提交时间，本地时区

    user = relationship("User", back_populates="journals")
    # 删除日记时一并删除开瓶记录
    bottle_open = relationship(
        "BottleOpen", back_populates="journal_entry", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )
