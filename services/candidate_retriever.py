# File: services/candidate_retriever.py
# 功能：候选漂流瓶检索
# 实现：SQL过滤出可开的瓶子，再用numpy计算余弦距离，取最近的若干只

import json
import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
from sqlalchemy import select
from sqlalchemy.orm import Session

from config import CANDIDATE_LIMIT, MAX_CANDIDATES, ASSIGNMENT_AWARE
from database_models import Bottle, BottleOpen

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """候选瓶子：按距离从近到远排列"""
    bottle_id: int
    name: str
    mood: str
    distance: float

    def to_prompt_item(self) -> dict:
        return {"id": self.bottle_id, "name": self.name, "mood": self.mood}


def cosine_distances(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """
    余弦距离 1 - cos(θ)

    说明：
        零向量与任何向量的距离记为 1.0
    """
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    similarity = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return 1.0 - similarity


class CandidateRetriever:
    """
    候选检索器

    条件：
        - 有心情描述和心情向量
        - 当前用户还没开过
        - assignment_aware 时只取分配给当前用户的瓶子
    排序：
        余弦距离升序，距离相同保持数据库返回顺序（按ID）
    """

    def __init__(self, limit: int = CANDIDATE_LIMIT, assignment_aware: bool = ASSIGNMENT_AWARE):
        self.limit = max(1, min(limit, MAX_CANDIDATES))
        self.assignment_aware = assignment_aware

    def retrieve(self, db: Session, query_embedding: Sequence[float], user_id: int) -> List[Candidate]:
        opened_ids = select(BottleOpen.bottle_id).where(BottleOpen.user_id == user_id)
        query = db.query(Bottle.id, Bottle.name, Bottle.mood, Bottle.mood_embedding).filter(
            Bottle.mood.isnot(None),
            Bottle.mood_embedding.isnot(None),
            Bottle.id.notin_(opened_ids),
        )
        if self.assignment_aware:
            query = query.filter(Bottle.assigned_viewer_id == user_id)
        rows = query.order_by(Bottle.id).all()

        if not rows:
            logger.info(f"🔍 用户 {user_id} 没有可开的瓶子")
            return []

        query_vector = np.asarray(query_embedding, dtype="float32")
        kept, vectors = [], []
        for row in rows:
            vector = json.loads(row.mood_embedding)
            if len(vector) != query_vector.shape[0]:
                logger.warning(f"⚠️ 瓶子 {row.id} 向量维度 {len(vector)} 与查询维度 {query_vector.shape[0]} 不一致，跳过")
                continue
            kept.append(row)
            vectors.append(vector)

        if not kept:
            return []

        distances = cosine_distances(np.asarray(vectors, dtype="float32"), query_vector)
        order = np.argsort(distances, kind="stable")[: self.limit]

        candidates = [
            Candidate(bottle_id=kept[i].id, name=kept[i].name, mood=kept[i].mood, distance=float(distances[i]))
            for i in order
        ]
        logger.info(f"🔍 检索到 {len(candidates)} 只候选: {[(c.bottle_id, round(c.distance, 3)) for c in candidates]}")
        return candidates
