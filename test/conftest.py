"""
测试共用的 fixture

外部模型用 fakes.py 里的替身，每个测试一个独立的 SQLite 文件库。
"""

from datetime import datetime
from typing import List, Optional

import pytest

from database_models import init_db, make_engine, make_session_factory, User, Bottle
from fakes import FakeClock


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 14, 10, 0, 0))


@pytest.fixture
def make_user(session_factory):
    counter = {"n": 0}

    def _make(is_admin: bool = False, email: Optional[str] = None) -> int:
        counter["n"] += 1
        db = session_factory()
        try:
            user = User(email=email or f"user{counter['n']}@example.com", is_admin=is_admin)
            db.add(user)
            db.commit()
            return user.id
        finally:
            db.close()

    return _make


@pytest.fixture
def make_bottle(session_factory):
    def _make(name: str = "瓶子", assigned_viewer_id: Optional[int] = None,
              mood: Optional[str] = "温柔", embedding: Optional[List[float]] = None) -> int:
        db = session_factory()
        try:
            bottle = Bottle(
                name=name,
                content={"blocks": [{"type": "text", "content": f"{name}的内容"}]},
                mood=mood,
                assigned_viewer_id=assigned_viewer_id,
            )
            bottle.set_embedding(embedding)
            db.add(bottle)
            db.commit()
            return bottle.id
        finally:
            db.close()

    return _make
