# File: database_models/user.py
# 功能：用户数据模型定义
# 实现：使用SQLAlchemy ORM，区分管理员（策展人）和普通用户（收瓶人）

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from config import now_local
from .database import Base

# ==================== 用户模型 ====================
class User(Base):
    """
    用户数据模型
    功能：存储用户身份和角色

    字段说明：
        - id: 主键，用户唯一标识
        - email: 用户邮箱，唯一
        - is_admin: 是否管理员（策展人），管理员可以装瓶、上传媒体和授权
        - created_at: 创建时间
        - journals: 关联的日记列表（一对多关系）
        - opens: 关联的开瓶记录（一对多关系）
    """
    __tablename__ = "users"  # 数据库表名

    id = Column(Integer, primary_key=True, index=True)  # 用户ID，主键，建立索引
    email = Column(String(255), unique=True, index=True, nullable=False)  # 用户邮箱，唯一
    is_admin = Column(Boolean, default=False, nullable=False)  # 角色标记，默认普通用户
    created_at = Column(DateTime, default=now_local)  # 创建时间，本地时区

    journals = relationship("JournalEntry", back_populates="user")
    opens = relationship("BottleOpen", back_populates="user")

    @property
    def role(self) -> str:
        return "admin" if self.is_admin else "user"
