# File: database_models/__init__.py
# 功能：数据库模型包的初始化文件，导出所有模型和配置
# 实现：统一导出用户、日记、漂流瓶、媒体模型和数据库配置

# 导出数据库配置
from .database import Base, init_db, engine, SessionLocal, make_engine, make_session_factory

# 导出数据模型
from .user import User
from .journal import JournalEntry
from .bottle import Bottle, BottleOpen
from .media import MediaObject, AccessGrant

# 导出所有公共接口
__all__ = [
    "Base",
    "init_db",
    "engine",
    "SessionLocal",
    "make_engine",
    "make_session_factory",
    "User",
    "JournalEntry",
    "Bottle",
    "BottleOpen",
    "MediaObject",
    "AccessGrant",
]
