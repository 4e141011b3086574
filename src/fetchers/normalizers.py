"""
normalizers.py - 各来源 feed 条目 → Item 的转换
来源类型是封闭集合（SourceKind），每种类型对应一个转换函数；
未知的来源 key 统一落到 GENERIC，不会出现查找失败
"""
import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from dateutil import parser as date_parser

from .base_fetcher import Item

logger = logging.getLogger(__name__)


class SourceKind(Enum):
    HACKERNEWS = "hackernews"
    QIITA = "qiita"
    ZENN = "zenn"
    GENERIC = "generic"

    @classmethod
    def from_key(cls, key: str) -> "SourceKind":
        try:
            return cls(key)
        except ValueError:
            return cls.GENERIC


def _first(entry, *keys) -> Optional[str]:
    for key in keys:
        value = entry.get(key)
        if value:
            return value
    return None


def _clean_html(text: Optional[str]) -> Optional[str]:
    """简单去除 HTML 标签"""
    if not text:
        return None
    cleaned = re.sub(r"<[^>]+>", "", text).strip()
    return cleaned or None


def _content_text(entry) -> Optional[str]:
    """Atom 的 content 是 [{value: ...}] 列表"""
    content = entry.get("content")
    if isinstance(content, list) and content:
        return content[0].get("value")
    return None


def _parse_time(entry, *keys) -> Optional[datetime]:
    """优先用 feedparser 解析好的 struct_time，其次用 dateutil 解析原始字符串"""
    for key in keys:
        t = entry.get(f"{key}_parsed")
        if t:
            try:
                return datetime(*t[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                pass
    for key in keys:
        raw = entry.get(key)
        if raw:
            try:
                parsed = date_parser.parse(raw)
            except (ValueError, OverflowError):
                continue
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
    return None


def _extract_tags(entry) -> List[str]:
    """feedparser 把 category 放在 tags: [{term: ...}]，个别 feed 只有 category 字符串"""
    terms = []
    for tag in entry.get("tags") or []:
        term = tag.get("term") if hasattr(tag, "get") else tag
        if term:
            terms.append(term)
    if not terms and entry.get("category"):
        terms.append(entry["category"])
    return [t.lower() for t in terms if isinstance(t, str) and t.strip()]


def _normalize_hackernews(entry, source: str) -> Item:
    return Item(
        title=entry.get("title") or "Untitled",
        url=_first(entry, "link", "id") or "",
        source=source,
        published_at=_parse_time(entry, "published", "updated"),
        author=_first(entry, "author", "dc_creator"),
        summary=_clean_html(_first(entry, "summary") or _content_text(entry)),
        tags=[],
    )


def _normalize_qiita(entry, source: str) -> Item:
    return Item(
        title=entry.get("title") or "Untitled",
        url=entry.get("link") or "",
        source=source,
        published_at=_parse_time(entry, "published", "updated"),
        author=_first(entry, "author", "dc_creator"),
        summary=_clean_html(_first(entry, "summary", "description")),
        tags=_extract_tags(entry),
    )


def _normalize_zenn(entry, source: str) -> Item:
    return Item(
        title=entry.get("title") or "Untitled",
        url=entry.get("link") or "",
        source=source,
        published_at=_parse_time(entry, "published", "updated"),
        author=_first(entry, "author", "dc_creator"),
        summary=_clean_html(_first(entry, "summary") or _content_text(entry)),
        tags=_extract_tags(entry),
    )


def _normalize_generic(entry, source: str) -> Item:
    return Item(
        title=entry.get("title") or "Untitled",
        url=_first(entry, "link", "id") or "",
        source=source,
        published_at=_parse_time(entry, "published", "updated"),
        author=_first(entry, "author", "dc_creator"),
        summary=_clean_html(
            _first(entry, "summary", "description") or _content_text(entry)
        ),
        tags=_extract_tags(entry),
    )


NORMALIZERS: Dict[SourceKind, Callable] = {
    SourceKind.HACKERNEWS: _normalize_hackernews,
    SourceKind.QIITA: _normalize_qiita,
    SourceKind.ZENN: _normalize_zenn,
    SourceKind.GENERIC: _normalize_generic,
}


def normalize_entry(entry, source: str) -> Optional[Item]:
    """转换单条 feed 条目；转换失败返回 None"""
    kind = SourceKind.from_key(source)
    try:
        return NORMALIZERS[kind](entry, source)
    except Exception as e:
        logger.warning(f"条目转换失败 (source={source}): {e}")
        return None


def normalize_entries(entries, source: str) -> List[Item]:
    """批量转换，丢弃转换失败的条目"""
    items = []
    for entry in entries or []:
        item = normalize_entry(entry, source)
        if item is not None:
            items.append(item)
    logger.debug(f"{source}: 转换 {len(items)}/{len(entries or [])} 条")
    return items
