#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
创建用户并签发令牌
功能：运维用命令行工具，新建（或查找已有的）用户，打印其ID和JWT
"""

import os
import sys
import logging

# 添加项目根目录到Python路径
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database_models import init_db, SessionLocal, User
from services.auth import create_access_token

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def create_user(email: str, is_admin: bool = False, session_factory=SessionLocal) -> User:
    """按邮箱创建用户；已存在时只在需要时提升为管理员"""
    db = session_factory()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            logging.info(f"ℹ️ 用户已存在: id={user.id}, email={email}")
            if is_admin and not user.is_admin:
                user.is_admin = True
                db.commit()
                logging.info(f"✅ 已提升为管理员: id={user.id}")
            return user

        user = User(email=email, is_admin=is_admin)
        db.add(user)
        db.commit()
        logging.info(f"✅ 用户已创建: id={user.id}, email={email}, admin={is_admin}")
        return user
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='创建用户并签发访问令牌')
    parser.add_argument('email', help='用户邮箱')
    parser.add_argument('--admin', action='store_true', help='创建为管理员')
    parser.add_argument('--expire-minutes', type=int, default=None, help='令牌有效期（分钟）')

    args = parser.parse_args()

    try:
        init_db()
        user = create_user(args.email, is_admin=args.admin)
        print(f"user_id={user.id}")
        print(f"token={create_access_token(user.id, args.expire_minutes)}")
    except Exception as e:
        logging.error(f"❌ 创建用户失败: {e}")
        sys.exit(1)
