# File: config.py
# 功能：服务配置项
# 实现：通过 python-dotenv 加载 .env，再从环境变量读取各项配置

import os
from datetime import datetime, timedelta, timezone
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ==================== 数据库 ====================
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./database/bottles.db")

# ==================== JWT 认证 ====================
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-fallback-dev-secret")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_MINUTES = 60 * 24 * 7  # 7天

# ==================== 千问模型 ====================
QIANWEN_API_KEY = os.getenv("QIANWEN_API_KEY")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-v4")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "1024"))
LLM_MODEL = os.getenv("LLM_MODEL", "qwen-plus")
LLM_API_URL = os.getenv(
    "LLM_API_URL",
    "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation",
)

# 外部调用预算：单次超时 + 有限重试，耗尽后抛 UpstreamError
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
UPSTREAM_MAX_RETRIES = int(os.getenv("UPSTREAM_MAX_RETRIES", "2"))

# ==================== 漂流瓶选择 ====================
# mood_query：先让模型把日记改写成心情短语再向量化；journal：直接向量化日记原文
QUERY_STRATEGY = os.getenv("QUERY_STRATEGY", "mood_query")
# 挑选提示词按最多5只候选编写，超过的配置一律截到5
MAX_CANDIDATES = 5
CANDIDATE_LIMIT = max(1, min(int(os.getenv("CANDIDATE_LIMIT", "5")), MAX_CANDIDATES))
# True：只在分配给当前用户的瓶子里挑；False：全局未开启的瓶子
ASSIGNMENT_AWARE = _env_bool("ASSIGNMENT_AWARE", True)

# ==================== 时区 ====================
# “每天一瓶”按服务器本地日界线计算，默认东八区
LOCAL_UTC_OFFSET_HOURS = int(os.getenv("LOCAL_UTC_OFFSET_HOURS", "8"))
LOCAL_TZ = timezone(timedelta(hours=LOCAL_UTC_OFFSET_HOURS))

# ==================== 媒体文件 ====================
MEDIA_UPLOAD_DIR = os.getenv("MEDIA_UPLOAD_DIR", "uploads/media")
MEDIA_MAX_BYTES = int(os.getenv("MEDIA_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB

# ==================== 定时任务 ====================
MOOD_BACKFILL_HOUR = int(os.getenv("MOOD_BACKFILL_HOUR", "4"))


def now_local() -> datetime:
    """
    当前本地时间（去掉 tzinfo）

    说明：
        数据库里所有时间戳都按本地时区的朴素时间存储，
        比较时两边必须一致
    """
    return datetime.now(LOCAL_TZ).replace(tzinfo=None)


def to_local_naive(value: datetime) -> datetime:
    """把带时区的时间转换成本地朴素时间；朴素时间视为已是本地时间"""
    if value.tzinfo is None:
        return value
    return value.astimezone(LOCAL_TZ).replace(tzinfo=None)
