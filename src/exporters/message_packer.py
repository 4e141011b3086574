"""
message_packer.py - 消息分片器
把 header + 若干 section + footer 装进长度不超过 max_length 的消息列表：
  - 每条消息都以 header 开头，块与块之间以空行分隔
  - section 放不下时另起一条消息；单个 section 本身超长时按
    空行（70% 之后）> 换行（80% 之后）> 90% 硬切 的优先级拆分
  - footer 追加到最后一条消息，放不下则单独发一条 header + footer
packer 只关心文本长度与顺序，不解析块内容
"""
import logging
from typing import List, Sequence

logger = logging.getLogger(__name__)

DISCORD_MAX_LENGTH = 2000
SEPARATOR = "\n\n"


class MessagePacker:
    """按长度上限拆分消息"""

    def __init__(self, max_length: int = DISCORD_MAX_LENGTH):
        if max_length <= 0:
            raise ValueError(f"max_length 必须为正数: {max_length}")
        self.max_length = max_length

    def pack(self, header: str, sections: Sequence[str], footer: str) -> List[str]:
        """
        :param header: 每条消息的开头
        :param sections: 按顺序排列的 section 文本块
        :param footer: 统计信息等结尾块
        :return: 每条长度 <= max_length 的消息列表
        """
        prefix = header + SEPARATOR
        footer_only = prefix + footer
        if len(footer_only) > self.max_length or len(prefix) >= self.max_length:
            raise ValueError(
                f"header + footer 共 {len(footer_only)} 字，超过单条上限 {self.max_length}"
            )

        chunks: List[str] = []
        current = header

        for section in sections:
            candidate = current + SEPARATOR + section
            if len(candidate) <= self.max_length:
                current = candidate
                continue

            if current != header:
                chunks.append(current)
            current = prefix + section

            # section 本身超长：切出前缀发送，剩余部分接在新的 header 之后继续
            while len(current) > self.max_length:
                split_at = self._find_split_point(current[: self.max_length], len(prefix))
                chunks.append(current[:split_at])
                current = prefix + current[split_at:]
                logger.debug(f"section 超长，在第 {split_at} 字处拆分")

        with_footer = current + SEPARATOR + footer
        if len(with_footer) <= self.max_length:
            chunks.append(with_footer)
        else:
            if current != header:
                chunks.append(current)
            chunks.append(footer_only)

        logger.debug(f"共 {len(sections)} 个 section，拆分为 {len(chunks)} 条消息")
        return chunks

    def _find_split_point(self, text: str, min_index: int) -> int:
        """
        在 text 中找切分位置，结果必须落在 header 前缀之后（min_index 之后），
        否则退到下一条规则；最后兜底切在 max_length 处
        """
        boundary = text.rfind(SEPARATOR)
        if boundary > len(text) * 0.7 and boundary + len(SEPARATOR) > min_index:
            return boundary + len(SEPARATOR)

        newline = text.rfind("\n")
        if newline > len(text) * 0.8 and newline + 1 > min_index:
            return newline + 1

        hard_cut = int(self.max_length * 0.9)
        if hard_cut > min_index:
            return hard_cut
        return self.max_length
