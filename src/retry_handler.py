"""
retry_handler.py - 指数退避重试执行器
延迟公式：min(base * 2^attempt, max)，开启 jitter 时乘以 [0.5, 1.5) 的随机系数，向下取整（毫秒）
最多调用 max_retries + 1 次，耗尽后原样抛出最后一次异常
执行器本身无状态，两次 execute() 之间不共享任何信息
"""
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """重试参数（延迟单位：毫秒）"""
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    jitter: bool = True

    @classmethod
    def from_config(cls, config: Optional[dict]) -> "RetryPolicy":
        """从 settings.yaml 的 retry 段构造，缺省字段使用默认值"""
        config = config or {}
        return cls(
            max_retries=int(config.get("max_retries", cls.max_retries)),
            base_delay_ms=int(config.get("base_delay_ms", cls.base_delay_ms)),
            max_delay_ms=int(config.get("max_delay_ms", cls.max_delay_ms)),
            jitter=bool(config.get("jitter", cls.jitter)),
        )


class RetryHandler:
    """带指数退避的重试执行器"""

    def __init__(self,
                 policy: Optional[RetryPolicy] = None,
                 retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                 sleep: Callable[[float], None] = time.sleep,
                 rand: Callable[[], float] = random.random):
        self.policy = policy or RetryPolicy()
        self.retry_on = retry_on
        self._sleep = sleep
        self._rand = rand

    def calculate_delay(self, attempt: int) -> int:
        """第 attempt 次（从 0 开始）失败后的等待毫秒数"""
        delay = min(self.policy.base_delay_ms * (2 ** attempt), self.policy.max_delay_ms)
        if self.policy.jitter:
            delay = delay * (0.5 + self._rand())
        return int(delay)

    def execute(self, fn: Callable[[], T], context: str = "RetryHandler") -> T:
        """执行 fn，失败时按退避策略重试"""
        max_retries = self.policy.max_retries
        for attempt in range(max_retries + 1):
            try:
                return fn()
            except self.retry_on as e:
                if attempt == max_retries:
                    logger.error(f"[{context}] 已达最大重试次数 ({max_retries})，放弃: {e}")
                    raise
                delay = self.calculate_delay(attempt)
                logger.warning(
                    f"[{context}] 第 {attempt + 1}/{max_retries + 1} 次尝试失败: {e}，"
                    f"{delay}ms 后重试"
                )
                self._sleep(delay / 1000)
        raise AssertionError("unreachable")
