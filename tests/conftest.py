"""Shared fakes for the notifier tests.

No test touches the network: feeds and the Discord webhook are served by
``FakeSession``, which mimics the small part of ``requests.Session`` the
fetchers and the notifier use.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

import pytest
import requests

WEBHOOK_URL = "https://discord.com/api/webhooks/123/abc"


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", text: str = "") -> None:
        self.status_code = status_code
        self.content = content
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Serves feed bodies on GET and scripted status codes on POST."""

    def __init__(self,
                 feeds: Optional[Dict[str, Union[bytes, Exception]]] = None,
                 post_statuses: Optional[List[Union[int, Exception]]] = None) -> None:
        self.feeds = feeds or {}
        self.post_statuses = list(post_statuses or [])
        self.gets: List[str] = []
        self.posts: List[dict] = []

    def get(self, url, headers=None, timeout=None):  # type: ignore[no-untyped-def]
        self.gets.append(url)
        body = self.feeds.get(url)
        if body is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(body, Exception):
            raise body
        return FakeResponse(200, content=body)

    def post(self, url, json=None, headers=None, timeout=None):  # type: ignore[no-untyped-def]
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        status = self.post_statuses.pop(0) if self.post_statuses else 204
        if isinstance(status, Exception):
            raise status
        return FakeResponse(status, text="" if status < 300 else "error body")


def rss_feed(*entries: tuple) -> bytes:
    """Build a minimal RSS 2.0 document from (title, link, pub_date) tuples."""
    items = "".join(
        f"<item><title>{title}</title><link>{link}</link>"
        f"<pubDate>{pub.strftime('%a, %d %b %Y %H:%M:%S +0000')}</pubDate></item>"
        for title, link, pub in entries
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>feed</title>'
        f"{items}</channel></rss>"
    ).encode("utf-8")


@pytest.fixture
def sleeps() -> List[float]:
    """A sleep replacement that records requested delays instead of waiting."""
    return []


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)
