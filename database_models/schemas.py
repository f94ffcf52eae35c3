# File: database_models/schemas.py
# 功能：数据验证模型定义
# 实现：使用Pydantic进行数据验证和序列化

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Union, Literal, Annotated
from datetime import datetime

# ==================== 漂流瓶内容块 ====================
class TextBlock(BaseModel):
    type: Literal["text"]
    content: str = Field(..., min_length=1)  # 文字内容，不能为空

class ImageBlock(BaseModel):
    type: Literal["image"]
    url: str = Field(..., min_length=1)  # 完整URL或 /media/{id} 路径
    caption: Optional[str] = None

class VideoBlock(BaseModel):
    type: Literal["video"]
    url: str = Field(..., min_length=1)
    caption: Optional[str] = None

class VoiceBlock(BaseModel):
    type: Literal["voice"]
    url: str = Field(..., min_length=1)
    duration: Optional[float] = Field(default=None, gt=0)  # 时长（秒）

BottleBlock = Annotated[
    Union[TextBlock, ImageBlock, VideoBlock, VoiceBlock],
    Field(discriminator="type"),
]

class BottleContent(BaseModel):
    """
    漂流瓶内容
    功能：有序的内容块列表，至少一块
    """
    blocks: List[BottleBlock] = Field(..., min_length=1)

# ==================== 请求模型 ====================
class CreateBottleRequest(BaseModel):
    """
    创建漂流瓶请求（仅管理员）

    字段说明：
        - name: 瓶子名称
        - content: 瓶子内容
        - description: 补充说明（可选，参与心情生成）
        - assigned_viewer_id: 指定收瓶人
    """
    name: str = Field(..., min_length=1)
    content: BottleContent
    description: Optional[str] = None
    assigned_viewer_id: int = Field(..., gt=0)

class SubmitJournalRequest(BaseModel):
    entry: str = Field(..., min_length=1)  # 日记正文

    @field_validator("entry")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("日记内容不能为空")
        return v

class OpenBottleRequest(SubmitJournalRequest):
    bottle_id: int = Field(..., gt=0)  # 目标瓶子ID

class GrantAccessRequest(BaseModel):
    """
    媒体授权请求（仅管理员）

    字段说明：
        - user_id: 被授权用户
        - max_views: 最多查看次数（正整数，可选）
        - expires_at: 过期时间（ISO时间，可选）
    """
    user_id: int = Field(..., gt=0)
    max_views: Optional[int] = Field(default=None, ge=1)
    expires_at: Optional[datetime] = None

# ==================== 响应模型 ====================
class AccessGrantResponse(BaseModel):
    media_id: str
    user_id: int
    email: Optional[str] = None
    access_count: int
    max_views: Optional[int] = None
    expires_at: Optional[datetime] = None

class UploadMediaRequest(BaseModel):
    """
    上传媒体请求（仅管理员）

    字段说明：
        - filename: 原始文件名
        - content_type: MIME类型，只接受 image/ video/ audio/
        - data: Base64编码的文件内容（可带 data:...;base64, 前缀）
    """
    filename: str = Field(..., min_length=1)
    content_type: str = Field(..., min_length=1)
    data: str = Field(..., min_length=1)
