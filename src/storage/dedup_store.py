"""
dedup_store.py - 去重缓存（data/seen.json）
负责读写已推送条目的指纹记录，按来源分区：

  {
    "schemaVersion": "1.0",
    "lastUpdated": "2026-01-01T00:00:00+00:00",
    "partitions": {"hackernews": {"<sha256>": "<首次出现时间 ISO-8601>"}, ...}
  }

缓存策略：
  - 判断是否"已见过"时跨全部分区查找（同一 URL 换了来源也不会重复推送）
  - 条目被 filter_new() 选中的瞬间即记为已见（至多尝试一次，而非至少送达一次）
  - 文件缺失 / 损坏 / 版本不符：重置为空缓存并写回，不中断运行
  - 写入失败：直接抛出，调用方不得在内存与磁盘不一致的情况下继续
  - 写入采用临时文件 + os.replace 的整文件原子替换
  - 每次运行由一个进程独占，不做跨进程加锁
"""
import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from dateutil.parser import isoparse

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
DEFAULT_RETENTION_DAYS = 30


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DedupStore:
    """按来源分区的指纹缓存"""

    def __init__(self,
                 path: str = "data/seen.json",
                 schema_version: str = SCHEMA_VERSION,
                 retention_days: int = DEFAULT_RETENTION_DAYS,
                 default_partitions: Iterable[str] = (),
                 clock: Callable[[], datetime] = _utc_now):
        self.path = Path(path)
        self.schema_version = schema_version
        self.retention_days = retention_days
        self.default_partitions = list(default_partitions)
        self._clock = clock
        self.last_updated: Optional[datetime] = None
        self.partitions: Dict[str, Dict[str, datetime]] = self._empty_partitions()

    # ── 读写 ──────────────────────────────────────────────────────────

    def load(self) -> "DedupStore":
        """读取缓存文件；缺失、损坏或版本不符时重置为空缓存并写回"""
        if not self.path.exists():
            logger.info(f"缓存文件不存在，新建空缓存: {self.path}")
            self._reset()
            self.persist()
            return self

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("缓存根节点不是对象")
            version = data.get("schemaVersion")
            if version == self.schema_version:
                partitions = self._parse_partitions(data.get("partitions", {}))
                last_updated = self._parse_time(data.get("lastUpdated"))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            # json.JSONDecodeError 是 ValueError 的子类
            logger.warning(f"缓存文件读取失败，重置缓存: {e}")
            self._reset()
            self.persist()
            return self

        # 版本不符：重置后写回，写入失败直接抛出
        if version != self.schema_version:
            logger.warning(
                f"缓存版本不符（文件 {version!r}，期望 {self.schema_version!r}），重置缓存"
            )
            self._reset()
            self.persist()
            return self

        self.partitions = partitions
        self.last_updated = last_updated
        logger.info(f"已加载缓存，共 {self.total_entries()} 条记录")
        return self

    def persist(self) -> None:
        """更新 lastUpdated 后整文件原子替换；失败直接抛出"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.last_updated = self._clock()
        payload = {
            "schemaVersion": self.schema_version,
            "lastUpdated": self.last_updated.isoformat(),
            "partitions": {
                source: {fp: ts.isoformat() for fp, ts in entries.items()}
                for source, entries in self.partitions.items()
            },
        }
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"缓存已写入: {self.path}")

    # ── 查询与记录 ────────────────────────────────────────────────────

    def contains(self, fingerprint: str) -> bool:
        """跨全部分区判断指纹是否已存在"""
        return any(fingerprint in entries for entries in self.partitions.values())

    def record(self, source_key: str, fingerprint: str,
               observed_at: Optional[datetime] = None) -> None:
        """写入（或覆盖）指定分区的记录；observed_at 缺省为当前时间"""
        if observed_at is None:
            observed_at = self._clock()
        elif observed_at.tzinfo is None:
            observed_at = observed_at.replace(tzinfo=timezone.utc)
        self.partitions.setdefault(source_key, {})[fingerprint] = observed_at

    def filter_new(self, items: List, limit: Optional[int] = None) -> List:
        """
        返回未见过的条目（保持原顺序），并立即将其记为已见
        同一批次内重复的条目只返回第一次出现的那条
        :param limit: 最多选出的条数；超出部分不返回也不记录，留给下次运行
        """
        new_items = []
        seen = 0
        for item in items:
            if limit is not None and len(new_items) >= limit:
                break
            if self.contains(item.fingerprint):
                seen += 1
                continue
            new_items.append(item)
            self.record(item.source, item.fingerprint)
        logger.info(f"过滤掉 {seen} 条已推送条目，新条目 {len(new_items)} 条")
        return new_items

    def cleanup(self, retention_days: Optional[int] = None) -> int:
        """删除首次出现时间早于保留窗口的记录；有删除时才写回，返回删除条数"""
        days = self.retention_days if retention_days is None else retention_days
        cutoff = self._clock() - timedelta(days=days)
        removed = 0
        for entries in self.partitions.values():
            expired = [fp for fp, ts in entries.items() if ts < cutoff]
            for fp in expired:
                del entries[fp]
            removed += len(expired)

        if removed:
            logger.info(f"已清理 {removed} 条过期缓存记录（保留 {days} 天）")
            self.persist()
        return removed

    def total_entries(self) -> int:
        return sum(len(entries) for entries in self.partitions.values())

    def stats(self) -> dict:
        """缓存统计：总条数 + 各来源条数"""
        by_source = {source: len(entries) for source, entries in self.partitions.items()}
        return {"total": sum(by_source.values()), "by_source": by_source}

    # ── 内部辅助 ──────────────────────────────────────────────────────

    def _empty_partitions(self) -> Dict[str, Dict[str, datetime]]:
        return {source: {} for source in self.default_partitions}

    def _reset(self) -> None:
        self.partitions = self._empty_partitions()
        self.last_updated = None

    def _parse_partitions(self, raw: dict) -> Dict[str, Dict[str, datetime]]:
        """解析分区；时间无法解析的单条记录直接丢弃"""
        if not isinstance(raw, dict):
            raise ValueError("partitions 不是对象")
        partitions = self._empty_partitions()
        dropped = 0
        for source, entries in raw.items():
            if not isinstance(entries, dict):
                raise ValueError(f"分区 {source!r} 不是对象")
            bucket = partitions.setdefault(source, {})
            for fp, ts in entries.items():
                parsed = self._parse_time(ts)
                if parsed is None:
                    dropped += 1
                    continue
                bucket[fp] = parsed
        if dropped:
            logger.warning(f"丢弃 {dropped} 条时间格式无效的缓存记录")
        return partitions

    @staticmethod
    def _parse_time(value) -> Optional[datetime]:
        if not isinstance(value, str):
            return None
        try:
            parsed = isoparse(value)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
