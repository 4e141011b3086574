"""
summary_client.py - 文章摘要 / 标题翻译客户端
通过 OpenAI 兼容 API 调用大模型（默认 Gemini 的 OpenAI 兼容端点）：
  - 日文文章：生成日文摘要
  - 英文文章：标题译为日文 + 日文摘要（首行为标题，其余为摘要）
未配置 API Key 时整体跳过；单条失败只记日志，不影响其他条目
"""
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

from openai import OpenAI

from src.fetchers.base_fetcher import Item

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-2.0-flash"

_JAPANESE_RE = re.compile(r"[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF]")


def is_japanese(text: Optional[str]) -> bool:
    """是否包含平假名、片假名或汉字"""
    return bool(text) and bool(_JAPANESE_RE.search(text))


class SummaryClient:
    """摘要客户端"""

    def __init__(self,
                 api_key: str = "",
                 base_url: str = DEFAULT_BASE_URL,
                 model: str = DEFAULT_MODEL,
                 max_summary_length: int = 200,
                 temperature: float = 0.7,
                 max_tokens: int = 200,
                 batch_size: int = 5,
                 batch_interval: float = 0.5,
                 client=None,
                 sleep: Callable[[float], None] = time.sleep):
        self.model = model
        self.max_summary_length = max_summary_length
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.batch_size = max(1, batch_size)
        self.batch_interval = batch_interval
        self._sleep = sleep
        self.client = client
        if self.client is None and api_key:
            self.client = OpenAI(base_url=base_url, api_key=api_key)
        if self.client is None:
            logger.warning("未配置摘要服务 API Key，跳过 AI 摘要")

    @classmethod
    def from_config(cls, config: Optional[dict], api_key: str) -> "SummaryClient":
        config = config or {}
        return cls(
            api_key=api_key if config.get("enabled", True) else "",
            base_url=config.get("api_base", DEFAULT_BASE_URL),
            model=config.get("model", DEFAULT_MODEL),
            max_summary_length=config.get("max_summary_length", 200),
            temperature=config.get("temperature", 0.7),
            max_tokens=config.get("max_tokens", 200),
            batch_size=config.get("batch_size", 5),
        )

    def is_enabled(self) -> bool:
        return self.client is not None

    def build_prompt(self, item: Item) -> str:
        n = self.max_summary_length
        content = f"\n内容: {item.summary}" if item.summary else ""
        if is_japanese(item.title):
            return (
                f"以下の記事を{n}文字程度で要約してください。重要なポイントを簡潔にまとめてください。\n\n"
                f"タイトル: {item.title}{content}\n\n"
                f"要約（日本語で出力）:"
            )
        content = f"\nContent: {item.summary}" if item.summary else ""
        return (
            f"以下の英語の記事を要約してください。タイトルは日本語に翻訳し、"
            f"内容は{n}文字程度で日本語で要約してください。\n\n"
            f"Title: {item.title}{content}\n\n"
            f"以下の形式で出力してください（最初の行が翻訳されたタイトル、2行目以降が要約）:\n"
            f"翻訳されたタイトル\n"
            f"要約（日本語で出力）"
        )

    @staticmethod
    def parse_response(text: str, japanese: bool) -> Tuple[Optional[str], Optional[str]]:
        """返回 (翻译标题, 摘要)；日文文章的全部输出都是摘要"""
        text = (text or "").strip()
        if japanese:
            return None, text or None
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if len(lines) >= 2:
            return lines[0], "\n".join(lines[1:])
        if len(lines) == 1:
            return None, lines[0]
        return None, None

    def summarize(self, item: Item) -> Tuple[Optional[str], Optional[str]]:
        if not self.is_enabled():
            return None, None
        japanese = is_japanese(item.title)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": self.build_prompt(item)}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            text = response.choices[0].message.content or ""
        except Exception as e:
            logger.warning(f"摘要生成失败 ({item.source}: {item.title[:30]}): {e}")
            return None, None
        logger.debug(f"摘要服务原始返回: {text!r}")
        return self.parse_response(text, japanese)

    def summarize_batch(self, items: List[Item]) -> List[Item]:
        """分批生成摘要：批内并发调用，批与批之间稍作停顿以避免限流；结果按原顺序就地写入 Item"""
        if not self.is_enabled() or not items:
            return items

        logger.info(f"生成 AI 摘要：{len(items)} 条，每批 {self.batch_size} 条并发")
        with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
            for start in range(0, len(items), self.batch_size):
                batch = items[start: start + self.batch_size]
                # map 按输入顺序返回结果
                for item, (translated, summary) in zip(batch, pool.map(self.summarize, batch)):
                    item.ai_summary = summary
                    if translated:
                        item.translated_title = translated
                if start + self.batch_size < len(items):
                    self._sleep(self.batch_interval)
        return items
