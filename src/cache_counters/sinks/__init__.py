"""
指标接收端模块 - 支持多种监控系统的计数器实现

本模块提供可插拔的接收端注册系统，允许采样器把缓存指标写入不同的监控系统。

核心功能:
- 接收端工厂注册机制: 通过 `register_sink` 注册自定义接收端
- 接收端实例化: 通过 `create_sink` 根据名称创建接收端实例
- 延迟加载: Prometheus 接收端仅在实际使用时才导入 prometheus_client

内置接收端:
- memory: 进程内接收端，适用于开发、测试
- prometheus: prometheus_client Gauge，由 Prometheus 抓取
- statsd: StatsD UDP Gauge

使用示例:
    ```python
    from cache_counters.sinks import create_sink, register_sink

    sink = create_sink("statsd", host="localhost", port=8125)

    register_sink("my_sink", lambda **opts: MySink(**opts))
    sink = create_sink("my_sink", endpoint="...")
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from importlib import import_module
from typing import Any

from .base import BaseMetricSink, CounterHandle
from .memory import MemorySink
from .statsd import StatsDSink

SinkFactory = Callable[..., BaseMetricSink]
"""接收端工厂类型，接收关键字参数并返回 BaseMetricSink 实例"""

_SINK_REGISTRY: dict[str, SinkFactory] = {}
"""全局接收端注册表，存储接收端名称到工厂函数的映射"""


def register_sink(name: str, factory: SinkFactory, *, override: bool = False) -> None:
    """
    注册新的接收端工厂到全局注册表

    Args:
        name: 接收端唯一标识符，会被转换为小写
        factory: 接收端工厂函数，签名为 ``(**kwargs) -> BaseMetricSink``
        override: 是否允许覆盖已存在的名称（默认 False）

    Raises:
        ValueError: 名称为空，或名称已存在且 override=False
    """
    key = name.strip().lower()
    if not key:
        raise ValueError("接收端名称不能为空")

    if key in _SINK_REGISTRY and not override:
        msg = f"接收端 '{name}' 已注册，如需覆盖请显式传入 override=True"
        raise ValueError(msg)

    _SINK_REGISTRY[key] = factory


def create_sink(name: str, **options: Any) -> BaseMetricSink:
    """
    根据注册的名称创建接收端实例

    Args:
        name: 已注册的接收端名称（不区分大小写）
        **options: 传递给接收端构造函数的关键字参数

    Returns:
        实例化的 BaseMetricSink 对象

    Raises:
        ValueError: 名称未注册
    """
    key = name.strip().lower()
    try:
        factory = _SINK_REGISTRY[key]
    except KeyError as exc:
        msg = f"未注册的指标接收端 '{name}'"
        raise ValueError(msg) from exc
    return factory(**options)


def get_registered_sinks() -> list[str]:
    """返回所有已注册的接收端名称（按字母顺序）"""
    return sorted(_SINK_REGISTRY.keys())


def _lazy_sink(module_path: str, attr: str) -> SinkFactory:
    """
    创建延迟导入的接收端工厂

    工厂在首次调用时才导入目标模块，
    避免导入本包时就加载 prometheus_client。
    """

    def _factory(**options: Any) -> BaseMetricSink:
        module = import_module(module_path)
        sink_cls = getattr(module, attr)
        return sink_cls(**options)

    return _factory


# 注册内置接收端
register_sink("memory", lambda **opts: MemorySink(**opts))
register_sink("statsd", lambda **opts: StatsDSink(**opts))
register_sink("prometheus", _lazy_sink("cache_counters.sinks.prometheus", "PrometheusSink"))

__all__ = [
    "BaseMetricSink",
    "CounterHandle",
    "MemorySink",
    "StatsDSink",
    "SinkFactory",
    "register_sink",
    "create_sink",
    "get_registered_sinks",
]
