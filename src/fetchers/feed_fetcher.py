"""
feed_fetcher.py - RSS / Atom 采集流水线
所有来源共用一条流水线，差异全部由 SourceConfig 描述（feed 列表、来源 key、条目上限）：
  下载（带重试）→ feedparser 解析 → 转换为 Item → 批内去重 → 时效过滤 + 截断
单个 feed 失败只记录日志并计数，不影响同一来源的其他 feed
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import feedparser
import requests

from src.processors.deduplicator import Deduplicator
from src.processors.filter import RecencyFilter
from src.retry_handler import RetryHandler

from .base_fetcher import Item
from .normalizers import normalize_entries

logger = logging.getLogger(__name__)

USER_AGENT = "AI-News-Notifier/1.0"
REQUEST_TIMEOUT = 30    # 秒


@dataclass
class SourceConfig:
    """单个来源的配置（对应 settings.yaml 的 sources.<key>）"""
    key: str                                    # hackernews / qiita / zenn / ...
    name: str                                   # 展示名
    feeds: List[str] = field(default_factory=list)
    max_items: int = 20                         # 采集阶段每个来源的条目上限
    emoji: str = "📰"
    short_name: str = ""                        # 页脚统计用的简称
    enabled: bool = True

    @classmethod
    def from_config(cls, key: str, config: dict) -> "SourceConfig":
        feeds = config.get("feeds", [])
        if isinstance(feeds, str):
            feeds = [feeds]
        return cls(
            key=key,
            name=config.get("name", key),
            feeds=list(feeds),
            max_items=int(config.get("max_items", 20)),
            emoji=config.get("emoji", "📰"),
            short_name=config.get("short_name") or config.get("name", key),
            enabled=config.get("enabled", True),
        )


@dataclass
class FetchResult:
    """单个来源的采集结果"""
    source: SourceConfig
    items: List[Item] = field(default_factory=list)
    feed_count: int = 0        # 成功的 feed 数
    item_count: int = 0        # 转换前的原始条目数
    failed_count: int = 0      # 失败的 feed 数


class FeedFetcher:
    """RSS / Atom 采集器"""

    def __init__(self,
                 source: SourceConfig,
                 retry_handler: Optional[RetryHandler] = None,
                 session: Optional[requests.Session] = None,
                 window_hours: int = 24,
                 timeout: float = REQUEST_TIMEOUT):
        self.source = source
        self.retry_handler = retry_handler or RetryHandler()
        self.session = session or requests.Session()
        self.window_hours = window_hours
        self.timeout = timeout

    def fetch(self) -> FetchResult:
        result = FetchResult(source=self.source)
        entries = []

        for url in self.source.feeds:
            context = f"FeedFetcher.{self.source.name}"
            try:
                feed = self.retry_handler.execute(lambda: self._fetch_feed(url), context)
            except Exception as e:
                result.failed_count += 1
                logger.warning(f"[{self.source.name}] feed 采集失败 {url}: {e}")
                continue
            result.feed_count += 1
            entries.extend(feed.entries)
            logger.debug(f"[{self.source.name}] {url}: {len(feed.entries)} 条")

        if result.failed_count:
            logger.warning(
                f"[{self.source.name}] {result.failed_count}/{len(self.source.feeds)} 个 feed 采集失败"
            )
        if result.feed_count == 0:
            logger.error(f"[{self.source.name}] 所有 feed 均采集失败")
            return result

        result.item_count = len(entries)
        items = normalize_entries(entries, self.source.key)
        items = Deduplicator().deduplicate(items)
        result.items = RecencyFilter(self.window_hours, self.source.max_items).filter(items)

        logger.info(
            f"[{self.source.name}] 原始 {result.item_count} 条 → 有效 {len(result.items)} 条"
            f"（{result.feed_count} 个 feed）"
        )
        return result

    def _fetch_feed(self, url: str):
        resp = self.session.get(url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
        resp.raise_for_status()
        feed = feedparser.parse(resp.content)
        if feed.bozo and not feed.entries:
            raise ValueError(f"feed 解析失败: {feed.get('bozo_exception')}")
        return feed
