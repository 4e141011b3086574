"""
discord_notifier.py - Discord Webhook 推送
按顺序逐条发送 MessagePacker 的输出：
  - 每条消息独立走 RetryHandler 重试（网络异常、非 2xx 状态码）
  - 两条消息之间固定间隔，避免触发 Discord 的突发限流
  - 某条消息重试耗尽后不再继续发送，异常原样抛给调用方（可能已部分送达）
"""
import logging
import time
import traceback
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union
from urllib.parse import urlsplit

import requests

from src.exporters.message_packer import DISCORD_MAX_LENGTH
from src.retry_handler import RetryHandler, RetryPolicy

logger = logging.getLogger(__name__)

WEBHOOK_HOSTS = ("discord.com", "discordapp.com")
WEBHOOK_PATH_PREFIX = "/api/webhooks/"
SEND_INTERVAL = 0.5     # 秒
REQUEST_TIMEOUT = 10    # 秒
ERROR_TRACE_LINES = 3


class InvalidWebhookError(ValueError):
    """Webhook URL 缺失或不是 Discord Webhook 地址"""


class WebhookStatusError(Exception):
    """Webhook 返回非 2xx 状态码"""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Unexpected status code: {status_code}")
        self.status_code = status_code
        self.body = body


@dataclass
class DeliveryResult:
    """单条消息的发送结果"""
    index: int                          # 从 1 开始的序号
    success: bool
    error: Optional[str] = None


class DiscordNotifier:
    """Discord Webhook 推送器"""

    def __init__(self,
                 webhook_url: Optional[str],
                 retry_policy: Optional[RetryPolicy] = None,
                 send_interval: float = SEND_INTERVAL,
                 timeout: float = REQUEST_TIMEOUT,
                 max_length: int = DISCORD_MAX_LENGTH,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.webhook_url = webhook_url
        self.send_interval = send_interval
        self.timeout = timeout
        self.max_length = max_length
        self.results: List[DeliveryResult] = []
        self._session = session or requests.Session()
        self._sleep = sleep
        self._retry = RetryHandler(
            retry_policy or RetryPolicy(max_retries=3, base_delay_ms=1000),
            retry_on=(requests.RequestException, WebhookStatusError),
            sleep=sleep,
        )

    @staticmethod
    def is_valid_webhook_url(url: Optional[str]) -> bool:
        """只接受 https://discord.com/api/webhooks/... 形式的地址"""
        if not url or not isinstance(url, str):
            return False
        try:
            parsed = urlsplit(url)
        except ValueError:
            return False
        return (
            parsed.scheme == "https"
            and parsed.hostname in WEBHOOK_HOSTS
            and parsed.path.startswith(WEBHOOK_PATH_PREFIX)
            and len(parsed.path) > len(WEBHOOK_PATH_PREFIX)
        )

    def send(self, messages: Union[str, Sequence[str]]) -> List[DeliveryResult]:
        """按顺序发送全部消息，返回每条的发送结果"""
        if not self.is_valid_webhook_url(self.webhook_url):
            raise InvalidWebhookError("DISCORD_WEBHOOK_URL 未设置或格式不正确")
        if isinstance(messages, str):
            messages = [messages]

        self.results = []
        total = len(messages)
        for i, content in enumerate(messages, 1):
            try:
                self._send_message(content, i, total)
            except Exception as e:
                self.results.append(DeliveryResult(index=i, success=False, error=str(e)))
                logger.error(f"第 {i}/{total} 条消息发送失败，终止推送（已送达 {i - 1}/{total} 条）")
                raise
            self.results.append(DeliveryResult(index=i, success=True))

            if i < total:
                self._sleep(self.send_interval)

        logger.info(f"全部 {total} 条消息发送成功")
        return self.results

    def send_error(self, error: BaseException) -> bool:
        """尽力发送一条错误通知；任何失败都只记日志，不影响原始错误的处理"""
        try:
            if not self.is_valid_webhook_url(self.webhook_url):
                logger.warning("Webhook URL 无效，跳过错误通知")
                return False
            self._send_message(self.format_error(error), 1, 1)
            return True
        except Exception as e:
            logger.warning(f"错误通知发送失败: {e}")
            return False

    def format_error(self, error: BaseException) -> str:
        """错误消息：标题 + 异常信息 + 前几行 traceback，截断到单条上限"""
        message = f"⚠️ **AIニュース通知エラー**\n\nエラー: {error}\n"
        trace = traceback.format_exception(type(error), error, error.__traceback__)
        trace_lines = "".join(trace).strip().splitlines()[-ERROR_TRACE_LINES:]
        if trace_lines:
            message += "```\n" + "\n".join(trace_lines) + "\n```"
        if len(message) > self.max_length:
            message = message[: self.max_length - 3] + "..."
        return message

    def _send_message(self, content: str, index: int, total: int) -> None:
        context = f"DiscordNotifier.send[{index}/{total}]"

        def post():
            logger.debug(f"[{context}] 发送中（{len(content)} 字）")
            resp = self._session.post(
                self.webhook_url,
                json={"content": content},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            if not 200 <= resp.status_code < 300:
                raise WebhookStatusError(resp.status_code, resp.text[:200])
            logger.info(f"[{context}] 发送成功")

        self._retry.execute(post, context)
