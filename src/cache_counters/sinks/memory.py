"""
内存指标接收端模块

在进程内保存计数器值的接收端，适用于开发、测试和嵌入式查询场景。
线程安全（RLock 保护）。
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import TYPE_CHECKING

from ..exceptions import CounterNotFoundError
from .base import BaseMetricSink, CounterHandle

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class MemoryCounterHandle(CounterHandle):
    """内存计数器句柄，写入时回调所属接收端"""

    def __init__(self, sink: MemorySink, category: str, name: str, instance: str) -> None:
        super().__init__(category, name, instance)
        self._sink = sink

    def set_value(self, value: int) -> None:
        self._sink._record(self.category, self.name, self.instance, value)


class MemorySink(BaseMetricSink):
    """
    内存指标接收端

    存储结构:
    - categories: {类别: {计数器名称, ...}}，表示已预先创建的定义
    - values: {(计数器名称, 实例名称): 最新值}
    - writes: 按时间顺序记录的最近写入 (类别, 计数器, 实例, 值, 时间戳)，
      超过 max_writes 条后丢弃最早的记录

    使用示例:
        >>> sink = MemorySink({"CacheCounters": ["CacheCount", "CacheSize"]})
        >>> handle = sink.open_counter("CacheCounters", "CacheCount", "html")
        >>> handle.set_value(42)
        >>> sink.get_value("CacheCount", "html")
        42
    """

    def __init__(
        self,
        categories: Mapping[str, Iterable[str]] | None = None,
        max_writes: int = 10000,
    ) -> None:
        """
        初始化内存接收端

        Args:
            categories: 预先创建的类别及其计数器名称，None 表示没有任何类别
            max_writes: 写入日志保留的最大条数（默认 10000），0 表示不记录

        Raises:
            ValueError: max_writes 小于 0
        """
        if max_writes < 0:
            msg = f"max_writes 不能小于 0: {max_writes}"
            raise ValueError(msg)

        self._categories: dict[str, set[str]] = {
            category: set(names) for category, names in (categories or {}).items()
        }
        self._values: dict[tuple[str, str], int] = {}
        self.max_writes = max_writes
        self._writes: deque[tuple[str, str, str, int, float]] = deque(maxlen=max_writes)
        self.open_count = 0  # 成功打开的句柄数量
        self._lock = threading.RLock()

    def category_exists(self, category: str) -> bool:
        with self._lock:
            return category in self._categories

    def open_counter(self, category: str, name: str, instance: str) -> CounterHandle:
        with self._lock:
            if name not in self._categories.get(category, ()):
                msg = f"计数器未定义: {category}/{name}"
                raise CounterNotFoundError(msg)
            self.open_count += 1
            return MemoryCounterHandle(self, category, name, instance)

    def _record(self, category: str, name: str, instance: str, value: int) -> None:
        """记录一次写入"""
        with self._lock:
            self._values[(name, instance)] = value
            self._writes.append((category, name, instance, value, time.monotonic()))

    # ========== 查询方法 ==========

    def get_value(self, name: str, instance: str) -> int | None:
        """
        获取计数器实例的最新值

        Returns:
            最新值，从未写入过则返回 None
        """
        with self._lock:
            return self._values.get((name, instance))

    @property
    def values(self) -> dict[tuple[str, str], int]:
        """所有计数器实例的最新值（副本）"""
        with self._lock:
            return dict(self._values)

    @property
    def writes(self) -> list[tuple[str, str, str, int, float]]:
        """最近的写入记录（副本），按时间顺序"""
        with self._lock:
            return list(self._writes)

    def reset(self) -> None:
        """清空已记录的值和写入日志，保留类别定义"""
        with self._lock:
            self._values.clear()
            self._writes.clear()
            self.open_count = 0

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"MemorySink(categories={sorted(self._categories)!r}, "
                f"instances={len(self._values)})"
            )
