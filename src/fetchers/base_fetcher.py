"""
base_fetcher.py - 统一数据条目模型
所有来源的原始 feed 条目经 normalizers 转换为 Item
Item 的 fingerprint 由 (来源, 标准化 URL) 计算，用于跨运行去重
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from src.processors.deduplicator import canonicalize_url, fingerprint

SUMMARY_MAX_LENGTH = 200
TITLE_MAX_LENGTH = 100


def truncate(text: str, max_length: int) -> str:
    """超长文本截断，末尾补 '...'"""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


@dataclass
class Item:
    """统一数据条目格式"""
    title: str                                  # 标题（空白已折叠）
    url: str                                    # 原文链接（构造后为标准化 URL）
    source: str                                 # 来源 key：hackernews / qiita / zenn / ...
    published_at: Optional[datetime] = None     # 发布时间（UTC aware）
    author: Optional[str] = None                # 作者
    summary: Optional[str] = None               # feed 自带摘要（截断到 200 字）
    tags: list = field(default_factory=list)    # 标签（小写）
    ai_summary: Optional[str] = None            # 摘要服务生成的摘要
    translated_title: Optional[str] = None      # 摘要服务翻译的标题
    fingerprint: str = field(init=False, default="")

    def __post_init__(self):
        self.title = re.sub(r"\s+", " ", self.title or "").strip() or "Untitled"
        # 先用原始 URL 计算指纹，再替换为标准化 URL
        self.fingerprint = fingerprint(self.source, self.url or "")
        self.url = canonicalize_url(self.url or "")
        if self.summary:
            self.summary = truncate(self.summary, SUMMARY_MAX_LENGTH)
        if self.published_at is not None and self.published_at.tzinfo is None:
            self.published_at = self.published_at.replace(tzinfo=timezone.utc)

    @property
    def display_title(self) -> str:
        return self.translated_title or self.title

    def is_within_last_hours(self, hours: int = 24, now: Optional[datetime] = None) -> bool:
        """无发布时间的条目视为新条目"""
        if self.published_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return self.published_at >= now - timedelta(hours=hours)

    def to_block(self, index: int = 1) -> str:
        """渲染为 Discord 文本块：编号标题 / AI 摘要 / 链接（尖括号禁用预览）"""
        lines = [f"{index}. {truncate(self.display_title, TITLE_MAX_LENGTH)}"]
        if self.ai_summary:
            lines.append(f"💬 {self.ai_summary}")
        lines.append(f"🔗 <{self.url}>")
        return "\n".join(lines)
