"""
Pytest 配置和全局 fixtures

本模块提供测试所需的公共 fixtures 和配置。
"""

from collections.abc import Generator

import pytest

from cache_counters import CacheRegistry, CacheStat, MemorySink, SamplingConfig
from cache_counters.types import CATEGORY, MetricKind

COUNTER_NAMES = [kind.counter_name for kind in MetricKind]


@pytest.fixture
def memory_sink() -> MemorySink:
    """已预先创建 CacheCounters 类别的内存接收端"""
    return MemorySink({CATEGORY: COUNTER_NAMES})


@pytest.fixture
def empty_sink() -> MemorySink:
    """没有任何类别的内存接收端"""
    return MemorySink()


@pytest.fixture
def html_stat() -> CacheStat:
    """单个缓存快照"""
    return CacheStat(name="html", count=42, size=1024, max_size=8192)


@pytest.fixture
def all_metrics_config() -> SamplingConfig:
    """启用全部指标的采样配置"""
    return SamplingConfig(
        sample_count=True, sample_size=True, sample_max_size=True, interval_millis=50
    )


@pytest.fixture
def registry() -> Generator[CacheRegistry, None, None]:
    """空的缓存注册表"""
    registry = CacheRegistry()
    yield registry
    for name in registry.names():
        registry.unregister(name)
