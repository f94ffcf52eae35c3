import math

import pytest

from services.bottle_selector import BottleSelector, parse_choice, STRATEGY_JOURNAL, STRATEGY_MOOD_QUERY
from services.candidate_retriever import CandidateRetriever
from fakes import FakeEmbedder, FakeOracle


def _at_distance(d):
    """与 [1, 0] 的余弦距离为 d 的单位向量"""
    cos = 1.0 - d
    return [cos, math.sqrt(1.0 - cos * cos)]


def _selector(session_factory, oracle, embedder=None, strategy=STRATEGY_MOOD_QUERY):
    return BottleSelector(
        embedder or FakeEmbedder(default=[1.0, 0.0]),
        oracle,
        CandidateRetriever(limit=5, assignment_aware=True),
        session_factory=session_factory,
        strategy=strategy,
    )


@pytest.mark.parametrize("reply, expected", [
    ("2", 2),
    ("  1. 因为它很温柔", 1),
    ("3", None),
    ("0", None),
    ("第二个", None),
    ("", None),
    (None, None),
])
def test_parse_choice(reply, expected):
    assert parse_choice(reply, 2) == expected


def test_invalid_reply_falls_back_to_closest(session_factory, make_user, make_bottle):
    user_id = make_user()
    farther = make_bottle("远一点", user_id, embedding=_at_distance(0.3))
    closest = make_bottle("最近", user_id, embedding=_at_distance(0.1))

    result = _selector(session_factory, FakeOracle(pick_reply="9")).select(user_id, "今天有点累")

    assert result.bottle_id == closest
    assert result.degraded
    assert result.oracle_reply == "9"
    assert [c.bottle_id for c in result.candidates] == [closest, farther]


def test_valid_reply_picks_that_candidate(session_factory, make_user, make_bottle):
    user_id = make_user()
    farther = make_bottle("远一点", user_id, embedding=_at_distance(0.3))
    make_bottle("最近", user_id, embedding=_at_distance(0.1))

    oracle = FakeOracle(pick_reply="2")
    result = _selector(session_factory, oracle).select(user_id, "今天有点累")

    assert result.bottle_id == farther
    assert not result.degraded
    assert [item["id"] for item in oracle.picks[0]] == [result.candidates[0].bottle_id, farther]


def test_no_candidates_skips_oracle(session_factory, make_user):
    oracle = FakeOracle()
    result = _selector(session_factory, oracle).select(make_user(), "今天有点累")

    assert not result.has_bottle
    assert oracle.picks == []


def test_mood_query_strategy_embeds_rewritten_text(session_factory, make_user):
    embedder = FakeEmbedder()
    oracle = FakeOracle(mood_query="疲惫但安心")
    _selector(session_factory, oracle, embedder).select(make_user(), "今天加班到很晚")

    assert oracle.mood_queries == ["今天加班到很晚"]
    assert embedder.calls == ["疲惫但安心"]


def test_journal_strategy_embeds_journal_text(session_factory, make_user):
    embedder = FakeEmbedder()
    oracle = FakeOracle()
    _selector(session_factory, oracle, embedder, strategy=STRATEGY_JOURNAL).select(make_user(), "今天加班到很晚")

    assert oracle.mood_queries == []
    assert embedder.calls == ["今天加班到很晚"]


def test_unknown_strategy_is_rejected(session_factory):
    with pytest.raises(ValueError):
        BottleSelector(FakeEmbedder(), FakeOracle(), session_factory=session_factory, strategy="random")
