"""
Prometheus 指标接收端模块

将缓存计数器写入 prometheus_client 的 Gauge，由 Prometheus 抓取。

映射关系：
- 类别 + 计数器 -> Gauge 名称 ``{category}_{counter}``，例如 ``CacheCounters_CacheCount``
- 实例 -> Gauge 标签（默认标签名 ``instance``）
- 句柄 -> 带标签的 Gauge 子序列

Gauge 需要由运维人员预先注册到 CollectorRegistry 中（只带一个实例标签），
本模块只查找已注册的定义，不会自行创建。

使用示例：
    >>> from prometheus_client import CollectorRegistry, Gauge
    >>> registry = CollectorRegistry()
    >>> Gauge("CacheCounters_CacheCount", "Cache item count", ["instance"], registry=registry)
    >>> sink = PrometheusSink(registry)
    >>> sink.open_counter("CacheCounters", "CacheCount", "html").set_value(42)
    >>> print(sink.generate_metrics())
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from prometheus_client import REGISTRY, Gauge, generate_latest

from ..exceptions import CounterNotFoundError, MetricSinkError
from .base import BaseMetricSink, CounterHandle

if TYPE_CHECKING:
    from prometheus_client import CollectorRegistry

logger = logging.getLogger(__name__)


class PrometheusCounterHandle(CounterHandle):
    """Prometheus 计数器句柄，包装带标签的 Gauge 子序列"""

    def __init__(self, child: Any, category: str, name: str, instance: str) -> None:
        super().__init__(category, name, instance)
        self._child = child

    def set_value(self, value: int) -> None:
        try:
            self._child.set(value)
        except Exception as e:
            msg = f"写入 Prometheus 指标失败: {self.category}/{self.name}/{self.instance}"
            raise MetricSinkError(msg) from e


class PrometheusSink(BaseMetricSink):
    """
    Prometheus 指标接收端

    Attributes:
        registry: 查找 Gauge 定义的注册表，默认为全局 REGISTRY
        label: 实例标签名称
    """

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        label: str = "instance",
    ) -> None:
        """
        初始化 Prometheus 接收端

        Args:
            registry: CollectorRegistry，None 使用全局默认注册表
            label: 区分缓存实例的标签名称
        """
        self.registry = registry if registry is not None else REGISTRY
        self.label = label

    def _collectors(self) -> dict[str, Any]:
        """已注册的指标名称 -> Collector 映射"""
        return dict(getattr(self.registry, "_names_to_collectors", {}))

    @staticmethod
    def metric_name(category: str, name: str) -> str:
        """生成 Gauge 名称"""
        return f"{category}_{name}"

    def category_exists(self, category: str) -> bool:
        prefix = f"{category}_"
        return any(name.startswith(prefix) for name in self._collectors())

    def open_counter(self, category: str, name: str, instance: str) -> CounterHandle:
        metric_name = self.metric_name(category, name)
        collector = self._collectors().get(metric_name)
        if collector is None:
            msg = f"Gauge 未注册: {metric_name}"
            raise CounterNotFoundError(msg)
        if not isinstance(collector, Gauge):
            msg = f"{metric_name} 不是 Gauge: {type(collector).__name__}"
            raise MetricSinkError(msg)

        try:
            child = collector.labels(**{self.label: instance})
        except ValueError as e:
            msg = f"{metric_name} 的标签定义与 {self.label!r} 不匹配"
            raise MetricSinkError(msg) from e

        logger.debug("打开 Prometheus 计数器 %s{%s=%r}", metric_name, self.label, instance)
        return PrometheusCounterHandle(child, category, name, instance)

    def generate_metrics(self) -> str:
        """
        生成 Prometheus 文本格式的指标

        Returns:
            注册表中全部指标的 exposition 文本
        """
        return generate_latest(self.registry).decode("utf-8")

    def __repr__(self) -> str:
        return f"PrometheusSink(registry={self.registry!r}, label={self.label!r})"
