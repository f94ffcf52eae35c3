# File: services/media_service.py
# 功能：私密媒体上传与读取
# 实现：文件存本地目录（媒体网关），元数据存数据库，每次读取前经过访问授权

import io
import os
import uuid
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from PIL import Image
from sqlalchemy.orm import Session

from config import MEDIA_UPLOAD_DIR, MEDIA_MAX_BYTES
from database_models import SessionLocal, MediaObject
from services.access_grants import AccessGrantStore, raise_for_decision
from services.errors import InternalError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_PREFIXES = ("image/", "video/", "audio/")


class LocalMediaGateway:
    """
    本地文件媒体网关
    功能：按存储键读写字节，不做任何权限判断
    """

    def __init__(self, base_dir: str = MEDIA_UPLOAD_DIR):
        self.base_dir = base_dir
        os.makedirs(self.base_dir, exist_ok=True)

    def _path(self, storage_key: str) -> str:
        path = os.path.abspath(os.path.join(self.base_dir, storage_key))
        if not path.startswith(os.path.abspath(self.base_dir) + os.sep):
            raise ValidationError("非法的存储键")
        return path

    def put(self, storage_key: str, data: bytes) -> None:
        path = self._path(storage_key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    def get(self, storage_key: str) -> bytes:
        path = self._path(storage_key)
        if not os.path.exists(path):
            logger.error(f"❌ 媒体文件丢失: {storage_key}")
            raise InternalError("媒体文件读取失败")
        with open(path, "rb") as f:
            return f.read()

    def delete(self, storage_key: str) -> None:
        path = self._path(storage_key)
        if os.path.exists(path):
            os.remove(path)


def generate_storage_key(filename: str) -> str:
    """生成唯一存储键，如 media/<uuid>.jpg"""
    _, ext = os.path.splitext(filename or "")
    return f"media/{uuid.uuid4()}{ext.lower() if ext else '.bin'}"


@dataclass
class MediaPayload:
    media_id: str
    filename: str
    content_type: str
    data: bytes


class MediaService:
    """
    媒体服务

    主要方法：
    - upload: 校验并保存文件，上传者自动获得访问授权
    - fetch: 授权通过后读取字节并记一次查看
    """

    def __init__(self, grants: AccessGrantStore, gateway: Optional[LocalMediaGateway] = None,
                 session_factory=SessionLocal, max_bytes: int = MEDIA_MAX_BYTES):
        self.grants = grants
        self.gateway = gateway or LocalMediaGateway()
        self.session_factory = session_factory
        self.max_bytes = max_bytes

    def _validate(self, data: bytes, content_type: str) -> None:
        if not data:
            raise ValidationError("文件为空")
        if len(data) > self.max_bytes:
            raise ValidationError(f"文件过大，最大支持{self.max_bytes // (1024 * 1024)}MB")
        if not content_type or not content_type.startswith(ALLOWED_PREFIXES):
            raise ValidationError(f"不支持的文件类型: {content_type}")
        if content_type.startswith("image/"):
            try:
                Image.open(io.BytesIO(data)).verify()
            except Exception as e:
                raise ValidationError(f"无效的图片文件: {e}")

    def _discard(self, media_id: str, storage_key: str) -> None:
        """删除媒体记录和文件（上传未完成时使用）"""
        db: Session = self.session_factory()
        try:
            media = db.get(MediaObject, media_id)
            if media:
                db.delete(media)
                db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
            self.gateway.delete(storage_key)

    def upload(self, uploader_id: int, data: bytes, filename: str, content_type: str) -> Dict[str, Any]:
        """
        上传媒体

        参数：
            uploader_id (int): 上传者（管理员）
            data (bytes): 文件内容
            filename (str): 原始文件名
            content_type (str): MIME类型

        返回：
            Dict: 媒体ID、文件名、大小、类型（不返回存储路径）
        """
        self._validate(data, content_type)

        storage_key = generate_storage_key(filename)
        self.gateway.put(storage_key, data)

        db: Session = self.session_factory()
        try:
            media = MediaObject(
                id=uuid.uuid4().hex,
                uploader_id=uploader_id,
                storage_key=storage_key,
                filename=filename or os.path.basename(storage_key),
                content_type=content_type,
                size_bytes=len(data),
            )
            db.add(media)
            db.commit()
        except Exception:
            db.rollback()
            self.gateway.delete(storage_key)
            raise
        finally:
            db.close()

        try:
            self.grants.grant(media.id, uploader_id)
        except Exception:
            logger.error(f"❌ 上传者授权失败，撤回上传: {media.id}")
            self._discard(media.id, storage_key)
            raise
        logger.info(f"✅ 媒体上传成功: {media.id} ({len(data)} bytes, {content_type})")

        return {
            "id": media.id,
            "filename": media.filename,
            "size": media.size_bytes,
            "content_type": media.content_type,
        }

    def fetch(self, media_id: str, user_id: int) -> MediaPayload:
        """
        读取媒体

        异常：
            NotFoundError: 媒体不存在
            ForbiddenError: 没有授权
            AccessGoneError: 授权过期或次数用完
        """
        db: Session = self.session_factory()
        try:
            media = db.get(MediaObject, media_id)
        finally:
            db.close()
        if not media:
            raise NotFoundError("媒体不存在")

        raise_for_decision(self.grants.consume(media_id, user_id))

        data = self.gateway.get(media.storage_key)
        return MediaPayload(media_id=media.id, filename=media.filename,
                            content_type=media.content_type, data=data)
