# File: llm/qwen_llm.py
# 功能：千问LLM API包装器
# 实现：封装千问Chat API调用，超时 + 有限重试，失败抛 UpstreamError

import json
import logging
import requests
from typing import List, Dict, Any, Optional
from langchain_core.messages import BaseMessage

from config import QIANWEN_API_KEY, LLM_API_URL, LLM_MODEL, LLM_TIMEOUT_SECONDS, UPSTREAM_MAX_RETRIES
from llm.llm_factory import call_with_retries
from services.errors import UpstreamError

logger = logging.getLogger(__name__)

class QwenLLM:
    """
    千问LLM API包装器类
    功能：封装千问Chat API调用，提供统一的LLM接口

    主要方法：
    - _call: 调用千问API生成回复
    - _make_request: 发送HTTP请求到千问API
    - _format_messages: 格式化消息为千问API格式
    """

    def __init__(self, api_key: Optional[str] = None, model: str = LLM_MODEL,
                 timeout: float = LLM_TIMEOUT_SECONDS, max_retries: int = UPSTREAM_MAX_RETRIES):
        """
        初始化千问LLM包装器

        配置：
        - API密钥优先使用参数，其次环境变量 QIANWEN_API_KEY
        - 单次请求超时 timeout 秒，失败后最多重试 max_retries 次
        """
        self.api_key = api_key or QIANWEN_API_KEY
        if not self.api_key:
            raise ValueError("QIANWEN_API_KEY 环境变量未设置")

        self.api_url = LLM_API_URL
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries

        logger.info(f"✅ 千问LLM初始化成功: {self.model}")

    def _call(self, messages: List[BaseMessage]) -> str:
        """
        调用千问API生成回复

        参数：
            messages (List[BaseMessage]): LangChain消息列表

        返回：
            str: 生成的回复文本

        异常：
            UpstreamError: 超时、HTTP错误或响应格式异常，且重试次数用完
        """
        formatted_messages = self._format_messages(messages)
        response = call_with_retries(
            lambda: self._make_request(formatted_messages),
            description="千问LLM",
            max_retries=self.max_retries,
        )

        try:
            reply = response["output"]["text"]
        except (KeyError, TypeError):
            logger.error(f"❌ 千问API 响应格式异常: {response}")
            raise UpstreamError("千问API响应格式异常")

        logger.info(f"✅ 千问API调用成功，生成长度: {len(reply)}")
        return reply

    def _format_messages(self, messages: List[BaseMessage]) -> List[Dict[str, str]]:
        """将LangChain消息格式化为千问API格式"""
        roles = {"human": "user", "ai": "assistant", "system": "system"}
        return [
            {"role": roles.get(getattr(message, "type", ""), "user"), "content": message.content}
            for message in messages
        ]

    def _make_request(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """
        发送HTTP请求到千问API

        请求配置：
            - 使用POST方法
            - 包含Authorization头部
            - 发送JSON格式数据，带超时
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        data = {
            "model": self.model,
            "input": {
                "messages": messages
            },
            "parameters": {
                "temperature": 0.7,
                "max_tokens": 512,
                "top_p": 0.8
            }
        }

        try:
            response = requests.post(
                self.api_url,
                headers=headers,
                json=data,
                timeout=self.timeout
            )

            logger.debug(f"🔍 千问API请求数据: {json.dumps(data, ensure_ascii=False)}")
            logger.debug(f"🔍 千问API响应状态: {response.status_code}")

            response.raise_for_status()
            return response.json()

        except requests.exceptions.HTTPError as e:
            logger.error(f"❌ 千问API HTTP错误: {e}")
            if e.response is not None:
                logger.error(f"   响应内容: {e.response.text}")
            raise
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ 千问API 请求失败: {e}")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"❌ 千问API 响应解析失败: {e}")
            raise
