"""Tests for URL canonicalization, fingerprints and in-batch dedup."""

from __future__ import annotations

import pytest

from src.fetchers.base_fetcher import Item
from src.processors.deduplicator import Deduplicator, canonicalize_url, fingerprint


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  https://example.com/post/1/  ", "https://example.com/post/1"),
        ("https://example.com/post/1?utm_source=x&utm_medium=y", "https://example.com/post/1"),
        ("https://example.com/a?id=3&utm_campaign=z&page=2", "https://example.com/a?id=3&page=2"),
        ("https://example.com/a/?utm_term=t", "https://example.com/a"),
        ("https://example.com/a#frag", "https://example.com/a#frag"),
        ("https://news.ycombinator.com/item?id=1/", "https://news.ycombinator.com/item?id=1"),
        ("https://example.com/a#/", "https://example.com/a"),
    ],
)
def test_canonicalize_url(raw: str, expected: str) -> None:
    assert canonicalize_url(raw) == expected


def test_fingerprint_ignores_trailing_slash_and_tracking_params() -> None:
    base = fingerprint("zenn", "https://zenn.dev/u/articles/x")
    assert fingerprint("zenn", "https://zenn.dev/u/articles/x/") == base
    assert fingerprint("zenn", "https://zenn.dev/u/articles/x?utm_source=rss") == base
    assert fingerprint("zenn", " https://zenn.dev/u/articles/x/?utm_content=a&utm_medium=b ") == base


def test_fingerprint_distinguishes_other_differences() -> None:
    base = fingerprint("zenn", "https://zenn.dev/u/articles/x")
    assert fingerprint("zenn", "https://zenn.dev/u/articles/y") != base
    assert fingerprint("zenn", "https://zenn.dev/u/articles/x?ref=1") != base
    assert fingerprint("qiita", "https://zenn.dev/u/articles/x") != base
    assert len(base) == 64


def test_item_fingerprint_is_independent_of_transient_fields(now) -> None:  # type: ignore[no-untyped-def]
    a = Item(title="A", url="https://qiita.com/x/items/1/", source="qiita", published_at=now)
    b = Item(title="Other title", url="https://qiita.com/x/items/1?utm_source=feed",
             source="qiita", published_at=None, summary="different")
    assert a.fingerprint == b.fingerprint
    assert a.url == "https://qiita.com/x/items/1"


def test_deduplicate_keeps_first_occurrence() -> None:
    items = [
        Item(title="first", url="https://a.com/1", source="hackernews"),
        Item(title="dup", url="https://a.com/1/", source="hackernews"),
        Item(title="second", url="https://a.com/2", source="hackernews"),
    ]
    result = Deduplicator().deduplicate(items)
    assert [i.title for i in result] == ["first", "second"]


@pytest.mark.parametrize(
    "with_slash, without_slash",
    [
        ("https://news.ycombinator.com/item?id=1/", "https://news.ycombinator.com/item?id=1"),
        ("https://example.com/a#top/", "https://example.com/a#top"),
    ],
)
def test_fingerprint_ignores_slash_after_query_or_fragment(with_slash: str, without_slash: str) -> None:
    assert fingerprint("hackernews", with_slash) == fingerprint("hackernews", without_slash)
