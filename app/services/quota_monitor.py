"""
本文件用于跟踪 AI 接口调用量，按分钟/小时两个滑动窗口判断是否还能发起新请求。
主要类:
- `QuotaMonitor`: 滑动窗口配额计数器（仅做建议性判断，不强制拦截）
"""

import math
import time
from collections import deque
from typing import Callable, Deque, Dict

from app.core.logger import setup_logger

logger = setup_logger("QuotaMonitor")

MINUTE_WINDOW_SECONDS = 60
HOUR_WINDOW_SECONDS = 3600


class QuotaMonitor:
    """
    输入:
    - `max_per_minute` / `max_per_hour`: 两个窗口内允许的最大请求数
    - `clock`: 单调时钟（秒），测试时可注入

    输出:
    - 是否允许发起请求、配额统计

    作用:
    - 记录已发出的 AI 请求时间戳；调用方需先 `can_make_request()` 再 `record_request()`

    仅在单个事件循环内使用，内部不加锁。
    """

    def __init__(
        self,
        max_per_minute: int = 8,
        max_per_hour: int = 15,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_per_minute = max_per_minute
        self.max_per_hour = max_per_hour
        self._clock = clock
        self._minute_window: Deque[float] = deque()
        self._hour_window: Deque[float] = deque()
        self.total_requests = 0

    def _prune(self, now: float) -> None:
        # 时间戳按写入顺序递增，只需裁剪队首
        while self._minute_window and now - self._minute_window[0] >= MINUTE_WINDOW_SECONDS:
            self._minute_window.popleft()
        while self._hour_window and now - self._hour_window[0] >= HOUR_WINDOW_SECONDS:
            self._hour_window.popleft()

    def can_make_request(self) -> bool:
        self._prune(self._clock())

        if len(self._minute_window) >= self.max_per_minute:
            logger.warning(f"⚠️ AI 配额已达上限: 最近 1 分钟 {len(self._minute_window)} 次请求")
            return False
        if len(self._hour_window) >= self.max_per_hour:
            logger.warning(f"⚠️ AI 配额已达上限: 最近 1 小时 {len(self._hour_window)} 次请求")
            return False
        return True

    def record_request(self) -> None:
        now = self._clock()
        self._minute_window.append(now)
        self._hour_window.append(now)
        self.total_requests += 1

    def get_stats(self) -> Dict[str, int]:
        """
        输入:
        - 无

        输出:
        - `total_requests`: 进程启动以来的请求总数
        - `recent_requests` / `hourly_requests`: 两个窗口内的请求数
        - `remaining_quota`: 两个窗口剩余额度的较小值
        - `quota_reset_in` / `hourly_reset_in`: 各窗口最早一条记录过期还需的秒数

        作用:
        - 为限流提示与状态接口提供统计数据
        """

        now = self._clock()
        self._prune(now)

        recent = len(self._minute_window)
        hourly = len(self._hour_window)
        remaining = min(self.max_per_minute - recent, self.max_per_hour - hourly)

        return {
            "total_requests": self.total_requests,
            "recent_requests": recent,
            "hourly_requests": hourly,
            "remaining_quota": max(0, remaining),
            "quota_reset_in": self._reset_in(self._minute_window, MINUTE_WINDOW_SECONDS, now),
            "hourly_reset_in": self._reset_in(self._hour_window, HOUR_WINDOW_SECONDS, now),
        }

    @staticmethod
    def _reset_in(window: Deque[float], size: int, now: float) -> int:
        if not window:
            return 0
        return max(0, math.ceil(window[0] + size - now))
