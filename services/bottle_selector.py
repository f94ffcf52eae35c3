# File: services/bottle_selector.py
# 功能：两段式漂流瓶选择
# 实现：日记 → 查询向量 → 候选检索 → LLM重排 → 校验编号，非法回复回退到最近的候选

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from config import QUERY_STRATEGY
from database_models import SessionLocal
from services.candidate_retriever import Candidate, CandidateRetriever

logger = logging.getLogger(__name__)

STRATEGY_JOURNAL = "journal"
STRATEGY_MOOD_QUERY = "mood_query"
STRATEGIES = (STRATEGY_JOURNAL, STRATEGY_MOOD_QUERY)

_LEADING_INT = re.compile(r"^\s*(\d+)")


@dataclass
class SelectionResult:
    """
    选择结果

    字段说明：
        - bottle_id: 选中的瓶子，没有候选时为 None
        - candidates: 候选列表（按距离排序）
        - degraded: 模型回复无法解析或越界，已回退到第一只候选
        - oracle_reply: 模型原始回复
    """
    bottle_id: Optional[int]
    candidates: List[Candidate] = field(default_factory=list)
    degraded: bool = False
    oracle_reply: Optional[str] = None

    @property
    def has_bottle(self) -> bool:
        return self.bottle_id is not None


def parse_choice(reply: Optional[str], count: int) -> Optional[int]:
    """
    解析模型回复里的编号

    返回：
        1..count 之间的整数；解析失败或越界返回 None
    """
    if not reply:
        return None
    match = _LEADING_INT.match(reply.strip())
    if not match:
        return None
    choice = int(match.group(1))
    if choice < 1 or choice > count:
        return None
    return choice


class BottleSelector:
    """
    漂流瓶选择器

    依赖（构造时注入）：
        - embedder: 提供 embed_query(text) -> List[float]
        - oracle: 提供 generate_mood_query(text) 和 pick(text, candidates) -> str
        - retriever: CandidateRetriever
        - strategy: "mood_query" 先改写再向量化；"journal" 直接向量化日记
    """

    def __init__(self, embedder, oracle, retriever: Optional[CandidateRetriever] = None,
                 session_factory=SessionLocal, strategy: str = QUERY_STRATEGY):
        if strategy not in STRATEGIES:
            raise ValueError(f"未知的查询策略: {strategy}，可选 {STRATEGIES}")
        self.embedder = embedder
        self.oracle = oracle
        self.retriever = retriever or CandidateRetriever()
        self.session_factory = session_factory
        self.strategy = strategy

    def derive_query_text(self, journal_text: str) -> str:
        if self.strategy == STRATEGY_MOOD_QUERY:
            return self.oracle.generate_mood_query(journal_text)
        return journal_text

    def select(self, user_id: int, journal_text: str) -> SelectionResult:
        """
        为一篇日记挑选一只瓶子

        流程：
            1. 按策略得到查询文本并向量化
            2. 检索候选，没有候选直接返回
            3. 请模型挑选，校验编号；非法时回退到距离最近的候选
        """
        query_text = self.derive_query_text(journal_text)
        query_embedding = self.embedder.embed_query(query_text)

        db = self.session_factory()
        try:
            candidates = self.retriever.retrieve(db, query_embedding, user_id)
        finally:
            db.close()

        if not candidates:
            return SelectionResult(bottle_id=None)

        reply = self.oracle.pick(journal_text, [c.to_prompt_item() for c in candidates])
        choice = parse_choice(reply, len(candidates))

        if choice is None:
            logger.warning(
                f"⚠️ 降级选择：模型回复 {reply!r} 无效（候选数 {len(candidates)}），回退到最近的瓶子 {candidates[0].bottle_id}"
            )
            return SelectionResult(bottle_id=candidates[0].bottle_id, candidates=candidates,
                                   degraded=True, oracle_reply=reply)

        chosen = candidates[choice - 1]
        logger.info(f"✅ 模型选择第 {choice} 只: bottle_id={chosen.bottle_id}, distance={chosen.distance:.3f}")
        return SelectionResult(bottle_id=chosen.bottle_id, candidates=candidates, oracle_reply=reply)
