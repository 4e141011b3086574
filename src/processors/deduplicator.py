"""
deduplicator.py - 去重模块
URL 标准化 + 指纹计算（跨运行去重的依据），以及批内按指纹去重
"""
import hashlib
from typing import List
from urllib.parse import urlsplit, urlunsplit

TRACKING_PARAMS = frozenset({
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
})


def canonicalize_url(url: str) -> str:
    """
    URL 标准化：去首尾空白、去掉整串的一个末尾斜杠、移除跟踪参数
    path 末尾的斜杠同样去掉一个（处理 /a/?utm_source=x 这类 URL）
    其余 query 参数保持原顺序和原编码；无法解析的 URL 只做去空白和去末尾斜杠
    """
    normalized = (url or "").strip()
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    try:
        parts = urlsplit(normalized)
    except ValueError:
        return normalized

    path = parts.path[:-1] if parts.path.endswith("/") else parts.path
    kept = [
        pair for pair in parts.query.split("&")
        if pair and pair.split("=", 1)[0] not in TRACKING_PARAMS
    ]
    return urlunsplit(parts._replace(path=path, query="&".join(kept)))


def fingerprint(source: str, url: str) -> str:
    """sha256("<source>:<标准化 URL>") 的十六进制摘要"""
    data = f"{source}:{canonicalize_url(url)}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


class Deduplicator:
    """批内去重器（跨运行去重由 DedupStore 负责）"""

    def deduplicate(self, items: List) -> List:
        """按指纹去除本批次重复的条目，保留首次出现的顺序"""
        seen = set()
        result = []
        for item in items:
            if item.fingerprint not in seen:
                seen.add(item.fingerprint)
                result.append(item)
        return result
