"""
message_formatter.py - Discord 摘要消息渲染
把各来源的新条目渲染成文本块（header / 每个来源一个 section / 统计 footer），
再交给 MessagePacker 拆分为不超过上限的消息
section 顺序固定为配置中的来源顺序
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from src.fetchers.base_fetcher import Item
from src.fetchers.feed_fetcher import SourceConfig

from .message_packer import MessagePacker

JST = timezone(timedelta(hours=9))
SEPARATOR_LINE = "━━━━━━━━━━━━━━━━━━━━━━━━━━━━"
DRY_RUN_PREVIEW_ITEMS = 3


class MessageFormatter:
    """Discord 摘要消息渲染器"""

    def __init__(self, sources: Sequence[SourceConfig], packer: Optional[MessagePacker] = None):
        self.sources = list(sources)
        self.packer = packer or MessagePacker()

    def format(self, items_by_source: Dict[str, List[Item]], total_fetched: int,
               now: Optional[datetime] = None) -> List[str]:
        """渲染并拆分为消息列表"""
        header = self.build_header(now)
        sections = self.build_sections(items_by_source)
        footer = self.build_footer(items_by_source, total_fetched)
        return self.packer.pack(header, sections, footer)

    def build_header(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        date_str = now.astimezone(JST).strftime("%Y/%m/%d")
        return f"📰 **AIニュースまとめ** ({date_str})"

    def build_sections(self, items_by_source: Dict[str, List[Item]]) -> List[str]:
        sections = []
        for source in self.sources:
            items = items_by_source.get(source.key) or []
            if items:
                sections.append(self._build_section(source, items))
        return sections

    def _build_section(self, source: SourceConfig, items: List[Item]) -> str:
        lines = [
            SEPARATOR_LINE,
            f"{source.emoji} **{source.name}** ({len(items)}件)",
            SEPARATOR_LINE,
        ]
        blocks = [item.to_block(idx) for idx, item in enumerate(items, 1)]
        return "\n".join(lines) + "\n\n" + "\n\n".join(blocks)

    def build_footer(self, items_by_source: Dict[str, List[Item]], total_fetched: int) -> str:
        total_new = sum(len(v) for v in items_by_source.values())
        stats = [
            f"{s.short_name}: {len(items_by_source[s.key])}件"
            for s in self.sources if items_by_source.get(s.key)
        ]
        lines = [
            SEPARATOR_LINE,
            "📊 **集計**",
            SEPARATOR_LINE,
            f"全ソース: {total_fetched}件取得 / 新着: {total_new}件",
        ]
        if stats:
            lines.append(f"({', '.join(stats)})")
        lines.append("")
        lines.append("🤖 Powered by GitHub Actions")
        return "\n".join(lines)

    def format_dry_run(self, items_by_source: Dict[str, List[Item]]) -> str:
        """--dry-run 时打印到控制台的预览"""
        total_new = sum(len(v) for v in items_by_source.values())
        lines = ["🧪 **Dry Run Mode**", "", f"以下の{total_new}件の記事を通知します:", ""]
        for source in self.sources:
            items = items_by_source.get(source.key) or []
            if not items:
                continue
            lines.append(f"{source.key}: {len(items)}件")
            for item in items[:DRY_RUN_PREVIEW_ITEMS]:
                lines.append(f"  - {item.display_title[:40]}...")
            if len(items) > DRY_RUN_PREVIEW_ITEMS:
                lines.append(f"  ... 他{len(items) - DRY_RUN_PREVIEW_ITEMS}件")
            lines.append("")
        return "\n".join(lines)
