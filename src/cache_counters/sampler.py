"""
采样器模块

执行一次完整的采样：遍历缓存快照，按配置写入启用的指标。

失败隔离：
- 句柄打开失败：跳过该缓存的该指标，本次不上报，下次采样自动重试
- 写入失败：记录警告并丢弃句柄，下次采样重新打开
- 枚举失败：本次采样计为失败，不影响下一次调度

任何一个 (缓存, 指标) 的失败都不会中断同一次采样中的其他写入。
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .types import CATEGORY

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .config import SamplingConfig
    from .handles import MetricHandleCache
    from .sources import CacheSnapshotSource
    from .types import CacheStat, MetricKind

logger = logging.getLogger(__name__)


@dataclass
class SamplerStats:
    """
    采样统计信息

    所有计数器都是累积值，可通过 reset() 重置。
    """

    # 采样统计
    passes: int = 0  # 完成的采样次数
    failed_passes: int = 0  # 枚举失败的采样次数

    # 写入统计
    writes: int = 0  # 成功写入次数
    skipped_writes: int = 0  # 句柄不可用而跳过的次数
    failed_writes: int = 0  # 写入失败次数

    # 时间统计
    last_pass_duration: float = 0.0  # 上次采样耗时（秒）
    last_pass_time: float | None = None  # 上次采样完成时间戳
    start_time: float = field(default_factory=time.time)  # 统计开始时间

    def reset(self) -> None:
        """重置所有计数器"""
        self.passes = 0
        self.failed_passes = 0
        self.writes = 0
        self.skipped_writes = 0
        self.failed_writes = 0
        self.last_pass_duration = 0.0
        self.last_pass_time = None
        self.start_time = time.time()

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "passes": self.passes,
            "failed_passes": self.failed_passes,
            "writes": self.writes,
            "skipped_writes": self.skipped_writes,
            "failed_writes": self.failed_writes,
            "last_pass_duration": self.last_pass_duration,
            "last_pass_time": self.last_pass_time,
            "uptime_seconds": time.time() - self.start_time,
        }


class Sampler:
    """
    缓存指标采样器

    使用示例:
        >>> sampler = Sampler(MetricHandleCache(sink))
        >>> sampler.run_pass(registry.enumerate(), SamplingConfig())
    """

    def __init__(self, handles: MetricHandleCache, category: str = CATEGORY) -> None:
        """
        初始化采样器

        Args:
            handles: 计数器句柄缓存
            category: 计数器类别名称
        """
        self.handles = handles
        self.category = category
        self.stats = SamplerStats()
        self._stats_lock = threading.Lock()

    def run_pass(self, caches: Iterable[CacheStat], config: SamplingConfig) -> None:
        """
        对给定的缓存快照执行一次采样

        按快照顺序处理每个缓存，依次写入 Count、Size、MaxSize 中启用的指标。
        不会抛出异常。

        Args:
            caches: 缓存快照序列
            config: 采样配置
        """
        started = time.monotonic()
        kinds = config.enabled_kinds()
        written = skipped = failed = 0

        for cache in caches:
            for kind in kinds:
                result = self._write(kind, cache)
                if result is True:
                    written += 1
                elif result is None:
                    skipped += 1
                else:
                    failed += 1

        duration = time.monotonic() - started
        with self._stats_lock:
            self.stats.passes += 1
            self.stats.writes += written
            self.stats.skipped_writes += skipped
            self.stats.failed_writes += failed
            self.stats.last_pass_duration = duration
            self.stats.last_pass_time = time.time()

        logger.debug(
            "采样完成: 写入 %d, 跳过 %d, 失败 %d, 耗时 %.3fs", written, skipped, failed, duration
        )

    def sample(self, source: CacheSnapshotSource, config: SamplingConfig) -> bool:
        """
        枚举缓存并执行一次采样

        Args:
            source: 缓存快照来源
            config: 采样配置

        Returns:
            采样完成返回 True，枚举失败返回 False
        """
        try:
            caches = source.enumerate()
        except Exception:
            logger.error("枚举缓存失败，跳过本次采样", exc_info=True)
            with self._stats_lock:
                self.stats.failed_passes += 1
            return False

        self.run_pass(caches, config)
        return True

    def _write(self, kind: MetricKind, cache: CacheStat) -> bool | None:
        """
        写入单个指标

        Returns:
            写入成功 True，句柄不可用 None，写入失败 False
        """
        handle = self.handles.resolve(self.category, kind.counter_name, cache.name)
        if handle is None:
            return None

        try:
            handle.set_value(kind.read(cache))
        except Exception as e:
            logger.warning("写入计数器失败 %s/%s: %s", kind.counter_name, cache.name, e)
            # 丢弃句柄，下次采样重新打开
            self.handles.invalidate(kind.counter_name, cache.name)
            return False
        return True

    def __repr__(self) -> str:
        return f"Sampler(category={self.category!r}, handles={self.handles!r})"
