# File: services/errors.py
# 功能：漂流瓶服务的错误类型
# 实现：每种错误带一个HTTP状态码，由 main.py 统一转换成HTTP错误响应

from typing import Optional


class BottleServiceError(Exception):
    """漂流瓶服务异常基类"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BottleServiceError):
    """瓶子、媒体或用户不存在"""
    status_code = 404


class ForbiddenError(BottleServiceError):
    """已登录但无权操作（不是收瓶人、不是管理员、授权被拒）"""
    status_code = 403

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class AccessGoneError(ForbiddenError):
    """授权已过期或查看次数已用完"""
    status_code = 410


class ConflictError(BottleServiceError):
    """
    正常业务下的约束冲突

    reason：
        - already_opened: 这个瓶子已经开过
        - daily_limit: 今天已经开过一瓶
    """
    status_code = 409

    ALREADY_OPENED = "already_opened"
    DAILY_LIMIT = "daily_limit"

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


class ValidationError(BottleServiceError):
    """输入格式或取值不合法，在任何写入之前拒绝"""
    status_code = 400


class UpstreamError(BottleServiceError):
    """向量化或大模型调用失败（超时/重试耗尽/响应异常）"""
    status_code = 502


class InternalError(BottleServiceError):
    """存储层故障"""
    status_code = 500
