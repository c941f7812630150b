"""
本文件用于定义项目统一的业务异常体系，便于 API 层集中捕获并转换为带提示的响应。
主要类:
- `LogiCoreError`: 业务异常基类（携带 `hint` 与 `status_code`）
- `ProviderErrorKind`: AI 服务商错误类型
- `AIGenerationError`: AI 客户端重试/切换后仍失败
- `RateLimitedError` 等: 报表生成链路上的具体错误分类
"""

from enum import Enum
from typing import Any, Dict, Optional


class LogiCoreError(Exception):
    """
    输入:
    - `message`: 错误信息
    - `hint`: 面向用户的处理建议（可选）

    输出:
    - 异常对象

    作用:
    - 作为项目统一的业务异常基类，API 层据此生成 `{"success": false, "error", "hint"}` 响应
    """

    status_code: int = 500
    default_hint: str = "请稍后重试，若问题持续请联系管理员。"

    def __init__(self, message: str, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint or self.default_hint

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, "hint": self.hint}


class ProviderErrorKind(str, Enum):
    QUOTA = "quota"
    RATE_LIMIT = "rate_limit"
    MODEL_NOT_FOUND = "model_not_found"
    AUTH = "auth"
    TRANSIENT = "transient"
    OTHER = "other"


class ProviderError(LogiCoreError):
    """单次 AI 调用失败（已归类为 `ProviderErrorKind`）"""

    status_code = 502

    def __init__(self, message: str, kind: ProviderErrorKind = ProviderErrorKind.OTHER) -> None:
        super().__init__(message)
        self.kind = kind


class AIGenerationError(LogiCoreError):
    """
    输入:
    - `message`: 最后一次失败的错误信息
    - `kind`: 最后一次失败的错误类型
    - `status`: 失败时 AI 客户端的状态快照

    输出:
    - 异常对象

    作用:
    - 标识 AI 客户端在重试与主备切换后仍然失败，保留现场便于排查
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind = ProviderErrorKind.OTHER,
        status: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status or {}


class NoClientAvailableError(LogiCoreError):
    status_code = 503
    default_hint = "未配置任何 AI 密钥，请设置 MAIN_AI_API_KEY（可选 BACKUP_AI_API_KEY）后重启服务。"


class RateLimitedError(LogiCoreError):
    """本地配额窗口已满，等待 `retry_after` 秒后可重试"""

    status_code = 429

    def __init__(self, message: str, remaining_quota: int = 0, retry_after: int = 0) -> None:
        super().__init__(message, hint=f"请等待 {retry_after} 秒后再试。")
        self.remaining_quota = remaining_quota
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"remainingQuota": self.remaining_quota, "retryAfter": self.retry_after})
        return data


class InsufficientQuotaError(RateLimitedError):
    pass


class ProviderQuotaExceededError(LogiCoreError):
    status_code = 429
    default_hint = "AI 服务商额度已用尽，请稍后再试或检查 API 计费设置。"


class ProviderRateLimitedError(LogiCoreError):
    status_code = 429
    default_hint = "AI 服务商请求过于频繁，请稍等片刻后重试。"


class ModelUnavailableError(LogiCoreError):
    status_code = 503
    default_hint = "AI 模型不可用，请联系管理员检查模型配置。"


class ReportGenerationError(LogiCoreError):
    status_code = 502
    default_hint = "AI 报表生成失败，请检查网络连接后重试。"


class AggregationFailureError(LogiCoreError):
    status_code = 500
    default_hint = "报表数据查询失败，请检查数据库连接。"


class ReportNotFoundError(LogiCoreError):
    status_code = 404
    default_hint = "报表不存在或已被删除。"
