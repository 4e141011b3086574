"""Tests for splitting the digest into Discord-sized messages."""

from __future__ import annotations

import random
from typing import List

import pytest

from src.exporters.message_packer import MessagePacker

FOOTER = "[FOOTER]"


def _bodies(chunks: List[str], header: str, footer: str = FOOTER) -> List[str]:
    """Strip the repeated header prefix and the footer suffix from every chunk."""
    prefix = header + "\n\n"
    bodies = []
    for chunk in chunks:
        assert chunk.startswith(header)
        body = chunk[len(prefix):] if chunk != header else ""
        if body == footer:
            body = ""
        elif body.endswith("\n\n" + footer):
            body = body[: -len("\n\n" + footer)]
        bodies.append(body)
    return bodies


def test_sections_that_fit_share_one_chunk() -> None:
    chunks = MessagePacker(100).pack("H", ["one", "two"], "F")
    assert chunks == ["H\n\none\n\ntwo\n\nF"]


def test_section_that_does_not_fit_opens_new_chunk() -> None:
    chunks = MessagePacker(12).pack("H", ["AAAA", "BBBBBB"], "F")
    assert chunks == ["H\n\nAAAA", "H\n\nBBBBBB\n\nF"]


def test_footer_that_does_not_fit_gets_its_own_chunk() -> None:
    chunks = MessagePacker(10).pack("H", ["AAAA", "BBBBBB"], "F")
    assert chunks == ["H\n\nAAAA", "H\n\nBBBBBB", "H\n\nF"]


def test_no_sections_yields_header_and_footer() -> None:
    assert MessagePacker(50).pack("H", [], "F") == ["H\n\nF"]


def test_oversized_section_splits_after_blank_line() -> None:
    section = "a" * 12 + "\n\n" + "b" * 10
    chunks = MessagePacker(20).pack("H", [section], "F")
    assert chunks == ["H\n\n" + "a" * 12 + "\n\n", "H\n\n" + "b" * 10 + "\n\nF"]


def test_oversized_section_splits_after_newline() -> None:
    section = "a" * 15 + "\n" + "b" * 10
    chunks = MessagePacker(20).pack("H", [section], "F")
    assert chunks == ["H\n\n" + "a" * 15 + "\n", "H\n\n" + "b" * 10 + "\n\nF"]


def test_oversized_section_without_newlines_is_hard_cut() -> None:
    section = "x" * 40
    chunks = MessagePacker(20).pack("H", [section], "F")
    assert [len(c) for c in chunks] == [18, 18, 16]
    assert "".join(_bodies(chunks, "H", "F")) == section


def test_long_header_still_makes_progress() -> None:
    header = "H" * 15
    chunks = MessagePacker(20).pack(header, ["abcdefghij"], "F")
    assert all(len(c) <= 20 for c in chunks)
    assert "".join(_bodies(chunks, header, "F")) == "abcdefghij"


def test_header_and_footer_larger_than_limit_is_rejected() -> None:
    with pytest.raises(ValueError):
        MessagePacker(20).pack("H" * 10, [], "F" * 10)


def test_split_section_is_reproduced_exactly() -> None:
    blocks = [f"{i}. title number {i}\n🔗 <https://example.com/{i}>" for i in range(1, 40)]
    section = "━━━━\n**Source** (39件)\n━━━━\n\n" + "\n\n".join(blocks)
    header = "📰 **AIニュースまとめ** (2026/01/01)"
    chunks = MessagePacker(300).pack(header, [section], FOOTER)

    assert len(chunks) > 1
    assert all(len(c) <= 300 for c in chunks)
    assert "".join(_bodies(chunks, header)) == section
    assert chunks[-1].endswith(FOOTER)
    assert sum(c.count(FOOTER) for c in chunks) == 1


@pytest.mark.parametrize("seed", range(25))
def test_random_inputs_respect_ceiling_and_keep_every_section(seed: int) -> None:
    rng = random.Random(seed)
    limit = rng.randint(60, 400)
    header = "HEAD" + "h" * rng.randint(0, 20)
    sections = []
    for i in range(rng.randint(0, 12)):
        lines = [f"<S{i}>"] + ["w" * rng.randint(1, 60) for _ in range(rng.randint(1, 8))]
        sections.append("\n".join(lines))

    chunks = MessagePacker(limit).pack(header, sections, FOOTER)

    assert chunks
    assert all(len(c) <= limit for c in chunks)
    assert all(c.startswith(header) for c in chunks)
    assert chunks[-1].endswith(FOOTER)
    assert sum(c.count(FOOTER) for c in chunks) == 1
    prefix_len = len(header) + 2
    for i, section in enumerate(sections):
        if prefix_len + len(section) <= limit:
            assert sum(section in c for c in chunks) == 1
    # markers appear in order, each exactly once
    joined = "".join(_bodies(chunks, header))
    positions = [joined.find(f"<S{i}>") for i in range(len(sections))]
    assert all(p >= 0 for p in positions)
    assert positions == sorted(positions)
