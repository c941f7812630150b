"""
本文件用于提供通用工具函数，当前主要用于报表周期的日期解析与计算。
主要函数:
- `parse_report_date`: 将 `YYYY-MM-DD` 字符串或日期对象统一为 `date`
- `period_bounds`: 计算查询用的 `[开始, 结束+1天)` 时间区间
- `recent_period`: 计算截至某天的最近 N 天周期
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple, Union

DateLike = Union[str, date]


def parse_report_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"日期格式错误: {value!r}，应为 YYYY-MM-DD")


def period_bounds(start_date: DateLike, end_date: DateLike) -> Tuple[datetime, datetime]:
    """
    输入:
    - `start_date` / `end_date`: 起止日期（含结束当天）

    输出:
    - `(开始时刻, 结束日次日零点)`，用于 `>= start AND < end` 查询

    作用:
    - 统一报表周期的时间边界，保证结束当天的订单被计入
    """

    start = parse_report_date(start_date)
    end = parse_report_date(end_date)
    if start > end:
        raise ValueError(f"开始日期 {start} 晚于结束日期 {end}")
    return datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)


def recent_period(days: int, today: Optional[date] = None) -> Tuple[str, str]:
    end = today or date.today()
    start = end - timedelta(days=days)
    return start.isoformat(), end.isoformat()
