"""
计数器句柄缓存模块

按 (计数器名称, 实例名称) 惰性打开并缓存接收端句柄。

缓存策略：
- 打开成功：保存句柄，之后的请求直接复用，不再访问接收端
- 打开失败：返回 None，且不缓存失败结果，下次请求会重新尝试
  （例如运维人员修复权限后无需重启进程即可恢复）

注意：本类不加锁，调用方（调度器）保证同一时刻只有一次采样在访问缓存。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .sinks.base import BaseMetricSink, CounterHandle
    from .types import HandleKey

logger = logging.getLogger(__name__)


class MetricHandleCache:
    """
    计数器句柄缓存

    使用示例:
        >>> handles = MetricHandleCache(sink)
        >>> handle = handles.resolve("CacheCounters", "CacheCount", "html")
        >>> if handle is not None:
        ...     handle.set_value(42)
    """

    def __init__(self, sink: BaseMetricSink) -> None:
        """
        初始化句柄缓存

        Args:
            sink: 指标接收端
        """
        self.sink = sink
        self._handles: dict[HandleKey, CounterHandle] = {}
        self.open_count = 0  # 成功打开句柄的次数

    def resolve(self, category: str, metric_name: str, instance_name: str) -> CounterHandle | None:
        """
        获取计数器句柄，不存在时尝试打开

        Args:
            category: 类别名称（不参与缓存键）
            metric_name: 计数器名称
            instance_name: 实例名称（缓存名称）

        Returns:
            计数器句柄，打开失败返回 None
        """
        key = (metric_name, instance_name)
        handle = self._handles.get(key)
        if handle is not None:
            return handle

        try:
            handle = self.sink.open_counter(category, metric_name, instance_name)
        except Exception as e:
            # 不缓存失败，下次采样重试
            logger.debug(
                "打开计数器失败 %s/%s/%s: %s", category, metric_name, instance_name, e
            )
            return None

        self._handles[key] = handle
        self.open_count += 1
        return handle

    def invalidate(self, metric_name: str, instance_name: str) -> bool:
        """
        丢弃一个已缓存的句柄

        Returns:
            句柄存在并被丢弃返回 True
        """
        return self._handles.pop((metric_name, instance_name), None) is not None

    def clear(self) -> None:
        """丢弃所有已缓存的句柄"""
        self._handles.clear()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def __repr__(self) -> str:
        return f"MetricHandleCache(sink={self.sink!r}, handles={len(self._handles)})"
