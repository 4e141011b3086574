"""
action.py - AI ニュース Discord 通知器 唯一入口
用法：
  python action.py               # 采集 → 去重 → 摘要 → 推送到 Discord
  python action.py --dry-run     # 只打印将要推送的内容：不推送、新条目不写入缓存文件、不清理缓存
  python action.py --verbose     # DEBUG 日志
  python action.py --config PATH # 指定配置文件（默认 config/settings.yaml）

环境变量（.env）：
  DISCORD_WEBHOOK_URL  推送目标（非 dry-run 时必填）
  GEMINI_API_KEY       摘要服务 Key（可选，未设置时跳过 AI 摘要）
  LOG_LEVEL            日志级别（可选）
"""
import argparse
import logging
import logging.handlers
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import requests
import yaml
from dotenv import load_dotenv

from src.discord_notifier import DiscordNotifier, InvalidWebhookError
from src.exporters.message_formatter import MessageFormatter
from src.exporters.message_packer import DISCORD_MAX_LENGTH, MessagePacker
from src.fetchers.feed_fetcher import FeedFetcher, FetchResult, SourceConfig
from src.retry_handler import RetryHandler, RetryPolicy
from src.storage.dedup_store import DedupStore
from src.summary_client import SummaryClient

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"
DEFAULT_MAX_ITEMS_PER_SECTION = 10


class ConfigError(Exception):
    """配置缺失或格式错误"""


@dataclass
class RunSummary:
    """一次运行的统计：采集条数 / 新条目数 / 送达消息数"""
    fetched: int = 0
    new: int = 0
    messages: int = 0
    delivered: int = 0
    cache: dict = field(default_factory=dict)   # DedupStore.stats()


# ─────────────────────────────────────────
# 日志与配置
# ─────────────────────────────────────────

def setup_logging(verbose: bool = False, log_file: str = "data/run.log") -> None:
    """日志配置：同时输出到控制台和文件"""
    level_name = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "INFO").upper()
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.handlers.RotatingFileHandler(
                log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
            ),
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )


def load_config(path: str = DEFAULT_CONFIG_PATH) -> dict:
    """加载 settings.yaml + .env，返回合并后的配置字典"""
    load_dotenv()
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise ConfigError(f"未找到配置文件 {cfg_path}，请确认工作目录正确")
    with open(cfg_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict) or not isinstance(config.get("sources"), dict):
        raise ConfigError(f"{cfg_path} 缺少 sources 配置")
    config["discord_webhook_url"] = os.getenv("DISCORD_WEBHOOK_URL", "")
    config["gemini_api_key"] = os.getenv("GEMINI_API_KEY", "")
    return config


def build_sources(config: dict) -> List[SourceConfig]:
    """按配置顺序构造来源列表（即 Discord 中 section 的顺序）"""
    sources = [
        SourceConfig.from_config(key, cfg or {})
        for key, cfg in config.get("sources", {}).items()
    ]
    return [s for s in sources if s.enabled and s.feeds]


# ─────────────────────────────────────────
# 采集（来源之间并发，单个来源失败不影响整体）
# ─────────────────────────────────────────

def fetch_all(sources: List[SourceConfig], config: dict,
              session: Optional[requests.Session] = None,
              sleep: Callable[[float], None] = time.sleep) -> List[FetchResult]:
    fetch_cfg = config.get("fetch", {})
    policy = RetryPolicy.from_config(fetch_cfg.get("retry"))
    window_hours = config.get("digest", {}).get("window_hours", 24)

    def fetch_one(source: SourceConfig) -> FetchResult:
        fetcher = FeedFetcher(
            source,
            retry_handler=RetryHandler(policy, sleep=sleep),
            session=session,
            window_hours=window_hours,
            timeout=fetch_cfg.get("timeout", 30),
        )
        return fetcher.fetch()

    results = []
    with ThreadPoolExecutor(max_workers=max(1, len(sources))) as pool:
        futures = [(s, pool.submit(fetch_one, s)) for s in sources]
        for source, future in futures:
            try:
                result = future.result()
            except Exception as e:
                logger.warning(f"{source.name} 采集失败: {e}")
                result = FetchResult(source=source, failed_count=len(source.feeds))
            print(f"[FETCH] {source.name}: {len(result.items)} 条")
            results.append(result)
    return results


# ─────────────────────────────────────────
# 主流程
# ─────────────────────────────────────────

def run(config: dict, dry_run: bool = False,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        summary_client: Optional[SummaryClient] = None) -> RunSummary:
    """
    采集 → 去重 → 截断 → 写缓存 → AI 摘要 → 清理过期缓存 → 渲染 → 推送
    dry-run 时不推送、新条目不写入缓存文件、不清理过期缓存（缓存文件缺失或损坏时 load() 仍会重建空文件）
    """
    summary = RunSummary()
    sources = build_sources(config)
    digest_cfg = config.get("digest", {})
    delivery_cfg = config.get("delivery", {})
    cache_cfg = config.get("cache", {})

    notifier = None
    if not dry_run:
        webhook_url = config.get("discord_webhook_url")
        if not webhook_url:
            raise ConfigError("DISCORD_WEBHOOK_URL 环境变量未设置")
        if not DiscordNotifier.is_valid_webhook_url(webhook_url):
            raise InvalidWebhookError("DISCORD_WEBHOOK_URL 不是 Discord Webhook 地址")
        notifier = DiscordNotifier(
            webhook_url,
            retry_policy=RetryPolicy.from_config(delivery_cfg.get("retry")),
            send_interval=delivery_cfg.get("send_interval", 0.5),
            timeout=delivery_cfg.get("timeout", 10),
            max_length=digest_cfg.get("max_length", DISCORD_MAX_LENGTH),
            session=session,
            sleep=sleep,
        )

    store = DedupStore(
        path=cache_cfg.get("path", "data/seen.json"),
        schema_version=str(cache_cfg.get("schema_version", "1.0")),
        retention_days=cache_cfg.get("retention_days", 30),
        default_partitions=[s.key for s in sources],
    ).load()

    # 1. 采集
    results = fetch_all(sources, config, session=session, sleep=sleep)
    summary.fetched = sum(r.item_count for r in results)
    errors = [f"{r.source.name}: {r.failed_count} feeds failed" for r in results if r.failed_count]
    if errors:
        logger.warning(f"部分来源采集失败: {', '.join(errors)}")
    logger.info(f"共采集 {summary.fetched} 条")

    # 2. 跨运行去重 + 每个 section 截断
    max_per_section = digest_cfg.get("max_items_per_section", DEFAULT_MAX_ITEMS_PER_SECTION)
    new_by_source: Dict[str, list] = {}
    for result in results:
        if result.items:
            new_by_source[result.source.key] = store.filter_new(result.items, max_per_section)
    if not dry_run:
        store.persist()

    # 3. AI 摘要
    summary_client = summary_client or SummaryClient.from_config(
        config.get("summary"), config.get("gemini_api_key", "")
    )
    for items in new_by_source.values():
        summary_client.summarize_batch(items)

    # 4. 清理过期缓存
    if not dry_run:
        store.cleanup()
    summary.cache = store.stats()
    logger.info(f"缓存共 {summary.cache['total']} 条记录 {summary.cache['by_source']}")

    summary.new = sum(len(v) for v in new_by_source.values())
    print(f"[PROCESS] 原始 {summary.fetched} 条 → 新条目 {summary.new} 条")
    if summary.new == 0:
        logger.info("没有新条目，本次不推送")
        return summary

    formatter = MessageFormatter(
        sources, MessagePacker(digest_cfg.get("max_length", DISCORD_MAX_LENGTH))
    )
    if dry_run:
        print("\n" + formatter.format_dry_run(new_by_source) + "\n")
        logger.info("Dry run 完成，未推送")
        return summary

    # 5. 推送
    messages = formatter.format(new_by_source, summary.fetched)
    summary.messages = len(messages)
    logger.info(f"推送 {len(messages)} 条消息到 Discord")
    try:
        notifier.send(messages)
    finally:
        summary.delivered = sum(1 for r in notifier.results if r.success)
        logger.info(
            f"采集 {summary.fetched} 条 / 新条目 {summary.new} 条 / "
            f"送达 {summary.delivered}/{summary.messages} 条消息"
        )
    return summary


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="AI ニュース Discord 通知器")
    parser.add_argument("--dry-run", action="store_true", help="只打印将要推送的内容")
    parser.add_argument("--verbose", action="store_true", help="输出 DEBUG 日志")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="配置文件路径")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    start = time.monotonic()
    logger.info("AI ニュース通知器 启动")

    config: dict = {}
    try:
        config = load_config(args.config)
        result = run(config, dry_run=args.dry_run)
    except Exception as e:
        logger.exception(f"运行失败: {e}")
        if not args.dry_run:
            webhook_url = config.get("discord_webhook_url") or os.getenv("DISCORD_WEBHOOK_URL", "")
            DiscordNotifier(webhook_url).send_error(e)
        return 1

    print(f"\n✅ 完成！耗时 {time.monotonic() - start:.2f}s，新条目 {result.new} 条")
    return 0


if __name__ == "__main__":
    sys.exit(main())
