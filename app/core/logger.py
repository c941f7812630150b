"""
本文件用于初始化并提供项目统一日志能力（根 logger 配置、命名 logger 与管理端可查看的内存日志）。
主要函数/类:
- `configure_logging`: 初始化根日志格式与等级（可重复调用）
- `setup_logger`: 获取具备统一格式的命名 logger
- `LogBuffer`: 保存最近若干条日志的环形缓冲
- `get_cached_log_text` / `clear_cached_logs`: 读取/清空内存日志（管理端 `/api/admin/logs`）
"""

import logging
import sys
from collections import deque
from threading import Lock
from typing import Deque, Optional

from app.core.config import get_settings

settings = get_settings()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
NOISY_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "asyncio", "httpx", "openai", "sqlalchemy.engine")


class LogBuffer(logging.Handler):
    """
    输入:
    - `capacity`: 最多保留的日志条数，超出后丢弃最旧的

    作用:
    - 作为根 logger 的附加 handler，把格式化后的日志行保存在内存中供管理端查看
    """

    def __init__(self, capacity: int = 1000) -> None:
        super().__init__()
        self._lines: Deque[str] = deque(maxlen=capacity)
        self._lines_lock = Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._lines_lock:
            self._lines.append(line)

    def text(self, tail: Optional[int] = None) -> str:
        with self._lines_lock:
            lines = list(self._lines)
        if tail is not None:
            lines = lines[-tail:] if tail > 0 else []
        return "\n".join(lines)

    def clear(self) -> None:
        with self._lines_lock:
            self._lines.clear()


_buffer = LogBuffer(capacity=settings.LOG_BUFFER_SIZE)


def _level_of(name: str) -> int:
    return getattr(logging, (name or "").upper(), logging.INFO)


def get_cached_log_text(tail: Optional[int] = None) -> str:
    return _buffer.text(tail)


def clear_cached_logs() -> None:
    _buffer.clear()


def configure_logging() -> None:
    """
    输入:
    - 无

    输出:
    - 无

    作用:
    - 根 logger 输出到 stdout 并挂载内存缓冲；INFO 级别时第三方库只输出 WARNING 及以上
    """

    level = _level_of(settings.LOG_LEVEL)
    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger()

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, LogBuffer) for h in root.handlers):
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        root.addHandler(console)
    if _buffer not in root.handlers:
        root.addHandler(_buffer)

    _buffer.setFormatter(formatter)
    root.setLevel(level)

    third_party_level = logging.WARNING if level == logging.INFO else level
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


def setup_logger(name: str) -> logging.Logger:
    """
    输入:
    - `name`: logger 名称（通常为服务名，如 `ReportService`）

    输出:
    - 已按配置设置等级的 `logging.Logger`
    """

    if _buffer not in logging.getLogger().handlers:
        configure_logging()
    named = logging.getLogger(name)
    named.setLevel(_level_of(settings.LOG_LEVEL))
    return named


logger = setup_logger(settings.APP_NAME)
