# File: database_models/media.py
# 功能：私密媒体与访问授权数据模型
# 实现：使用SQLAlchemy ORM，授权按 (媒体, 用户) 唯一

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from config import now_local
from .database import Base

# ==================== 媒体模型 ====================
class MediaObject(Base):
    """
    私密媒体元数据
    功能：记录上传文件在存储中的位置，字节本身由媒体网关读写

    字段说明：
        - id: 主键，随机字符串（不暴露存储路径）
        - uploader_id: 上传者
        - storage_key: 存储键
        - filename: 原始文件名
        - content_type: MIME类型
        - size_bytes: 文件大小
        - created_at: 上传时间
    """
    __tablename__ = "media_objects"

    id = Column(String(64), primary_key=True)
    uploader_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    storage_key = Column(String(500), nullable=False, unique=True)
    filename = Column(String(255), nullable=False)
    content_type = Column(String(100), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=now_local, nullable=False)

    uploader = relationship("User")
    grants = relationship("AccessGrant", back_populates="media", cascade="all, delete-orphan")


# ==================== 访问授权模型 ====================
class AccessGrant(Base):
    """
    访问授权
    功能：限定某个用户查看某个媒体的次数和有效期

    字段说明：
        - access_count: 成功查看次数，只增不减，即审计记录
        - max_views: 最多查看次数（可为空，表示不限）
        - expires_at: 过期时间（可为空，表示永不过期）
    """
    __tablename__ = "access_grants"

    id = Column(Integer, primary_key=True, index=True)
    media_id = Column(String(64), ForeignKey("media_objects.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    access_count = Column(Integer, default=0, nullable=False)
    max_views = Column(Integer, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=now_local, nullable=False)
    updated_at = Column(DateTime, default=now_local, onupdate=now_local, nullable=False)

    media = relationship("MediaObject", back_populates="grants")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("media_id", "user_id", name="uq_access_grants_media_user"),
    )
