# File: llm/qwen_embedding.py
# 功能：千问text-embedding模型封装
# 实现：通过dashscope SDK调用，失败按配置重试，最终失败抛 UpstreamError

import logging
from typing import List, Optional
from dashscope import TextEmbedding

from config import QIANWEN_API_KEY, EMBEDDING_MODEL, EMBEDDING_DIMENSION, UPSTREAM_MAX_RETRIES
from llm.llm_factory import call_with_retries
from services.errors import UpstreamError

class QwenEmbeddingModel:
    """
    千问text-embedding模型封装
    功能：提供文本向量化接口
    """

    def __init__(self, api_key: Optional[str] = None, model_name: str = EMBEDDING_MODEL,
                 dimension: int = EMBEDDING_DIMENSION, max_retries: int = UPSTREAM_MAX_RETRIES):
        """
        初始化千问embedding模型

        参数：
            api_key (str): 千问API密钥，如果为None则从环境变量获取
            model_name (str): 模型名称
            dimension (int): 输出向量维度
            max_retries (int): 失败后最多重试次数
        """
        self.api_key = api_key or QIANWEN_API_KEY
        if not self.api_key:
            raise ValueError("未设置QIANWEN_API_KEY环境变量")

        self.model_name = model_name
        self.dimension = dimension
        self.max_retries = max_retries

    def embed_query(self, text: str) -> List[float]:
        """
        对单个查询文本进行向量化

        参数：
            text (str): 查询文本

        返回：
            List[float]: 向量表示
        """
        embedding = call_with_retries(
            lambda: self._embed(text),
            description="千问Embedding",
            max_retries=self.max_retries,
        )
        logging.debug(f"✅ 查询向量化成功: '{text[:50]}...'")
        return embedding

    def _embed(self, text: str) -> List[float]:
        response = TextEmbedding.call(
            model=self.model_name,
            input=text,
            dimension=self.dimension,
            api_key=self.api_key,
        )

        if response.status_code != 200:
            logging.error(f"❌ 千问API调用失败: {response.message}")
            raise UpstreamError(f"千问API错误: {response.message}")

        return response.output["embeddings"][0]["embedding"]
