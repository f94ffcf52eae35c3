# File: database_models/database.py
# 功能：数据库配置和连接管理
# 实现：使用SQLAlchemy ORM，默认SQLite，写事务一开始就拿写锁

import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from config import DATABASE_URL

# 声明式基类
Base = declarative_base()


def make_engine(url: str = DATABASE_URL):
    """
    创建数据库引擎

    参数：
        url (str): 数据库连接字符串

    说明：
        SQLite 下关闭 pysqlite 自带的事务管理，改为每个事务显式
        BEGIN IMMEDIATE，这样“检查→写入”整段都在写锁内执行；
        同时打开外键约束，删除日记时级联删除开瓶记录
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def make_session_factory(engine):
    """会话工厂：禁用自动刷新和自动提交"""
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


engine = make_engine()
SessionLocal = make_session_factory(engine)


# ==================== 数据库初始化 ====================
def init_db(bind=None):
    """
    初始化数据库
    功能：创建所有数据库表结构

    说明：
        此函数在应用启动时调用，确保数据库表结构存在
        如果表已存在，不会重复创建
    """
    bind = bind or engine
    if bind.url.drivername.startswith("sqlite") and bind.url.database not in (None, "", ":memory:"):
        directory = os.path.dirname(bind.url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)
    Base.metadata.create_all(bind=bind)
