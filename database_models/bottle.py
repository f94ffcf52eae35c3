# File: database_models/bottle.py
# 功能：漂流瓶与开瓶记录数据模型
# 实现：使用SQLAlchemy ORM；心情向量以JSON文本存储，检索时再计算距离

import json
from typing import List, Optional
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from config import now_local
from .database import Base

# ==================== 漂流瓶模型 ====================
class Bottle(Base):
    """
    漂流瓶数据模型
    功能：管理员预先装好的一瓶内容，指定收瓶人，每位用户最多开启一次

    字段说明：
        - id: 主键
        - name: 瓶子名称
        - content: 结构化内容 {"blocks": [...]}，块类型 text/image/video/voice
        - description: 管理员补充说明（可选，参与心情生成）
        - mood: 心情描述（LLM生成，可为空）
        - mood_embedding: 心情向量，JSON数组文本（可为空）
        - assigned_viewer_id: 指定收瓶人（可为空）
        - created_by_id: 创建者
        - created_at: 创建时间
    """
    __tablename__ = "bottles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    content = Column(JSON, nullable=False)
    description = Column(Text, nullable=True)
    mood = Column(Text, nullable=True)
    mood_embedding = Column(Text, nullable=True)
    assigned_viewer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=now_local, nullable=False)

    assigned_viewer = relationship("User", foreign_keys=[assigned_viewer_id])
    opens = relationship("BottleOpen", back_populates="bottle")

    def get_embedding(self) -> Optional[List[float]]:
        if not self.mood_embedding:
            return None
        return json.loads(self.mood_embedding)

    def set_embedding(self, vector: Optional[List[float]]) -> None:
        self.mood_embedding = json.dumps([float(v) for v in vector]) if vector is not None else None


# ==================== 开瓶记录模型 ====================
class BottleOpen(Base):
    """
    开瓶记录
    功能：把瓶子、开瓶用户和触发开瓶的日记关联起来

    约束：
        (bottle_id, user_id) 唯一，同一用户同一瓶子永远只能有一条记录
    """
    __tablename__ = "bottle_opens"

    id = Column(Integer, primary_key=True, index=True)
    bottle_id = Column(Integer, ForeignKey("bottles.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    journal_entry_id = Column(
        Integer, ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    opened_at = Column(DateTime, default=now_local, nullable=False, index=True)

    bottle = relationship("Bottle", back_populates="opens")
    user = relationship("User", back_populates="opens")
    journal_entry = relationship("JournalEntry", back_populates="bottle_open")

    __table_args__ = (
        UniqueConstraint("bottle_id", "user_id", name="uq_bottle_opens_bottle_user"),
    )
