"""
filter.py - 时效过滤
按发布时间倒序排序，只保留最近 N 小时的条目，并截断到每个来源的条目上限
无发布时间的条目视为新条目，排在最后
"""
from datetime import datetime, timezone
from typing import List, Optional

from src.fetchers.base_fetcher import Item

DEFAULT_WINDOW_HOURS = 24


class RecencyFilter:
    """时效过滤器"""

    def __init__(self, window_hours: int = DEFAULT_WINDOW_HOURS, max_items: Optional[int] = None):
        self.window_hours = window_hours
        self.max_items = max_items

    def filter(self, items: List[Item], now: Optional[datetime] = None) -> List[Item]:
        now = now or datetime.now(timezone.utc)
        result = [i for i in self.sort_newest_first(items)
                  if i.is_within_last_hours(self.window_hours, now)]
        if self.max_items is not None:
            result = result[: self.max_items]
        return result

    @staticmethod
    def sort_newest_first(items: List[Item]) -> List[Item]:
        dated = [i for i in items if i.published_at is not None]
        undated = [i for i in items if i.published_at is None]
        dated.sort(key=lambda x: x.published_at, reverse=True)
        return dated + undated
