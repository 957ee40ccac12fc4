"""
Cache Counters - 缓存状态周期采样与指标发布

周期性读取进程内各缓存的条目数、当前大小和最大大小，
并按 (缓存名称, 指标种类) 写入外部监控系统，便于运维人员使用标准监控工具观察缓存健康状况。

支持的指标接收端：
- Memory: 进程内接收端（开发、测试）
- Prometheus: prometheus_client Gauge
- StatsD: UDP Gauge

主要特性：
- 启动时立即采样一次，之后按固定间隔周期采样
- 采样互不重叠，间隔从上次采样完成时算起
- 计数器句柄惰性创建并复用，创建失败不缓存、下次自动重试
- 单个计数器失败不影响其他指标，任何异常都不会抛给宿主进程
- 计数器类别不存在时自动禁用

示例：
    >>> from cache_counters import CacheCountersHook, CacheRegistry, SamplingConfig
    >>> from cache_counters.sinks import MemorySink
    >>>
    >>> registry = CacheRegistry()
    >>> registry.register("html", html_cache)
    >>> sink = MemorySink({"CacheCounters": ["CacheCount", "CacheSize", "CacheMaxSize"]})
    >>> hook = CacheCountersHook(registry, sink, SamplingConfig(interval_millis=5000))
    >>> hook.initialize()
"""

from __future__ import annotations

from .__version__ import __version__
from .config import CacheCountersConfig, SamplingConfig
from .exceptions import (
    CacheCountersConfigError,
    CacheCountersError,
    CounterNotFoundError,
    MetricSinkError,
)
from .handles import MetricHandleCache
from .hook import CacheCountersHook
from .sampler import Sampler, SamplerStats
from .scheduler import AsyncScheduler, Scheduler
from .sinks import (
    BaseMetricSink,
    CounterHandle,
    MemorySink,
    StatsDSink,
    create_sink,
    register_sink,
)
from .sources import CacheRegistry, CacheSnapshotSource, CallableSource, read_cache_stat
from .types import CATEGORY, CacheStat, LifecycleState, MetricKind

# 导出核心类和版本号
__all__ = [
    "__version__",
    # 钩子
    "CacheCountersHook",
    # 采样与调度
    "Sampler",
    "SamplerStats",
    "Scheduler",
    "AsyncScheduler",
    "MetricHandleCache",
    # 配置
    "SamplingConfig",
    "CacheCountersConfig",
    # 缓存来源
    "CacheSnapshotSource",
    "CacheRegistry",
    "CallableSource",
    "read_cache_stat",
    # 接收端
    "BaseMetricSink",
    "CounterHandle",
    "MemorySink",
    "StatsDSink",
    "create_sink",
    "register_sink",
    # 类型
    "CATEGORY",
    "CacheStat",
    "MetricKind",
    "LifecycleState",
    # 异常
    "CacheCountersError",
    "CacheCountersConfigError",
    "MetricSinkError",
    "CounterNotFoundError",
]
