import numpy as np
import pytest

from services.candidate_retriever import CandidateRetriever, cosine_distances
from services.open_transaction import OpenTransactionManager


def test_cosine_distances_handles_zero_vectors():
    matrix = np.array([[1.0, 0.0], [0.0, 1.0], [0.0, 0.0]], dtype="float32")
    distances = cosine_distances(matrix, np.array([1.0, 0.0], dtype="float32"))
    assert distances == pytest.approx([0.0, 1.0, 1.0])


def test_retrieve_orders_by_distance_and_limits(session_factory, make_user, make_bottle):
    user_id = make_user()
    far = make_bottle("远", user_id, embedding=[0.0, 1.0])
    near = make_bottle("近", user_id, embedding=[1.0, 0.0])
    middle = make_bottle("中", user_id, embedding=[1.0, 1.0])

    retriever = CandidateRetriever(limit=2, assignment_aware=True)
    db = session_factory()
    try:
        candidates = retriever.retrieve(db, [1.0, 0.0], user_id)
    finally:
        db.close()

    assert [c.bottle_id for c in candidates] == [near, middle]
    assert far not in [c.bottle_id for c in candidates]
    assert candidates[0].distance == pytest.approx(0.0, abs=1e-6)


def test_retrieve_breaks_ties_by_id(session_factory, make_user, make_bottle):
    user_id = make_user()
    ids = [make_bottle(f"瓶{i}", user_id, embedding=[1.0, 0.0]) for i in range(3)]

    db = session_factory()
    try:
        candidates = CandidateRetriever(limit=5, assignment_aware=True).retrieve(db, [2.0, 0.0], user_id)
    finally:
        db.close()

    assert [c.bottle_id for c in candidates] == ids


def test_retrieve_filters_ineligible_bottles(session_factory, make_user, make_bottle):
    user_id = make_user()
    other_id = make_user()
    eligible = make_bottle("可开", user_id, embedding=[1.0, 0.0])
    make_bottle("没有心情", user_id, mood=None, embedding=None)
    make_bottle("没有向量", user_id, embedding=None)
    make_bottle("维度不对", user_id, embedding=[1.0, 0.0, 0.0])
    others = make_bottle("别人的", other_id, embedding=[1.0, 0.0])
    opened = make_bottle("已开", user_id, embedding=[1.0, 0.0])

    OpenTransactionManager(session_factory).open_bottle(user_id, "之前的日记", opened)

    db = session_factory()
    try:
        assigned = CandidateRetriever(assignment_aware=True).retrieve(db, [1.0, 0.0], user_id)
        everyone = CandidateRetriever(assignment_aware=False).retrieve(db, [1.0, 0.0], user_id)
    finally:
        db.close()

    assert [c.bottle_id for c in assigned] == [eligible]
    assert [c.bottle_id for c in everyone] == [eligible, others]


def test_retrieve_returns_empty_without_bottles(session_factory, make_user):
    db = session_factory()
    try:
        assert CandidateRetriever().retrieve(db, [1.0, 0.0], make_user()) == []
    finally:
        db.close()


def test_limit_never_exceeds_five(session_factory, make_user, make_bottle):
    user_id = make_user()
    for i in range(7):
        make_bottle(f"瓶{i}", user_id, embedding=[1.0, 0.0])

    retriever = CandidateRetriever(limit=10, assignment_aware=True)
    db = session_factory()
    try:
        candidates = retriever.retrieve(db, [1.0, 0.0], user_id)
    finally:
        db.close()

    assert retriever.limit == 5
    assert len(candidates) == 5
