# File: llm/llm_factory.py
# 功能：外部模型调用的公共工具
# 实现：有限次重试；把模型输出统一转成字符串

import logging
import time
from typing import Any, Callable, List, Optional
from langchain_core.messages import HumanMessage, SystemMessage

from services.errors import UpstreamError

def call_with_retries(fn: Callable[[], Any], description: str, max_retries: int,
                      backoff_seconds: float = 0.5) -> Any:
    """
    调用外部服务，失败后重试

    参数：
        fn: 无参调用
        description: 日志里显示的服务名
        max_retries: 首次失败后最多再试几次
        backoff_seconds: 第 n 次重试前等待 n * backoff_seconds 秒

    异常：
        UpstreamError: 所有尝试都失败
    """
    attempts = max_retries + 1
    last_error: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as e:
            last_error = e
        logging.warning("⚠️ %s 调用失败（第 %d/%d 次）：%s", description, attempt, attempts, last_error)
        if attempt < attempts and backoff_seconds:
            time.sleep(backoff_seconds * attempt)

    logging.error("❌ %s 重试耗尽：%s", description, last_error)
    raise UpstreamError(f"{description}调用失败: {last_error}")

def _call_to_str(call_fn: Callable[[Any], Any], payload: Any) -> str:
    """统一把模型输出转成字符串，避免上游类型不一致"""
    out = call_fn(payload)
    return out if isinstance(out, str) else str(out)

def chat_with_llm(llm, prompt: str, system_prompt: Optional[str] = None) -> str:
    """
    用 system + user 两条消息调用LLM
    返回：去掉首尾空白的纯字符串
    """
    messages: List = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    messages.append(HumanMessage(content=prompt))
    return _call_to_str(llm._call, messages).strip()
