# File: llm/bottle_oracle.py
# 功能：漂流瓶挑选相关的LLM能力
# 实现：心情描述生成、日记心情改写、候选重排，均基于注入的LLM实例

import logging
from typing import Dict, List, Optional

from llm.llm_factory import chat_with_llm
from prompts.bottle_prompts import (
    BOTTLE_MOOD_SYSTEM_PROMPT,
    MOOD_QUERY_SYSTEM_PROMPT,
    BOTTLE_PICKER_SYSTEM_PROMPT,
    get_bottle_mood_prompt,
    get_mood_query_prompt,
    get_bottle_picker_prompt,
)
from services.errors import UpstreamError

logger = logging.getLogger(__name__)

class BottleOracle:
    """
    漂流瓶挑选器（LLM）

    主要方法：
    - generate_mood_query: 把日记改写成一句心情短语
    - pick: 在候选里挑一只，返回模型的原始回复（由调用方校验）
    - generate_mood: 为新瓶子生成心情描述
    """

    def __init__(self, llm):
        self.llm = llm

    def _ask(self, system_prompt: str, prompt: str, what: str) -> str:
        reply = chat_with_llm(self.llm, prompt, system_prompt=system_prompt)
        if not reply:
            logger.error(f"❌ {what}：模型返回空内容")
            raise UpstreamError(f"{what}失败：模型返回空内容")
        return reply

    def generate_mood_query(self, journal_text: str) -> str:
        mood_query = self._ask(MOOD_QUERY_SYSTEM_PROMPT, get_mood_query_prompt(journal_text), "日记心情改写")
        logger.info(f"🔍 日记心情改写: {mood_query[:80]}")
        return mood_query

    def pick(self, journal_text: str, candidates: List[Dict]) -> str:
        """
        请模型从候选中挑一只

        参数：
            journal_text (str): 日记原文
            candidates (List[Dict]): 候选列表，每项含 id / name / mood

        返回：
            str: 模型原始回复，期望是 1..N 的编号
        """
        if not candidates:
            raise ValueError("候选列表为空")
        return self._ask(BOTTLE_PICKER_SYSTEM_PROMPT, get_bottle_picker_prompt(journal_text, candidates), "候选重排")

    def generate_mood(self, content: Dict, description: Optional[str] = None) -> str:
        mood = self._ask(BOTTLE_MOOD_SYSTEM_PROMPT, get_bottle_mood_prompt(content, description), "心情描述生成")
        logger.info(f"✅ 心情描述生成成功: {mood[:80]}")
        return mood
