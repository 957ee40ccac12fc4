"""
基础使用示例

演示如何登记缓存、配置接收端并启动周期采样。
"""

import logging
import time

from prometheus_client import CollectorRegistry, Gauge

from cache_counters import CacheCountersHook, CacheRegistry, MemorySink, SamplingConfig
from cache_counters.sinks.prometheus import PrometheusSink


class DemoCache:
    """演示用缓存，提供 count/size/max_size 属性"""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self._items: dict[str, bytes] = {}

    def put(self, key: str, value: bytes) -> None:
        self._items[key] = value

    @property
    def count(self) -> int:
        return len(self._items)

    @property
    def size(self) -> int:
        return sum(len(value) for value in self._items.values())


def demonstrate_memory_sink(caches: CacheRegistry) -> None:
    """演示内存接收端"""
    print("=== 内存接收端示例 ===\n")

    sink = MemorySink({"CacheCounters": ["CacheCount", "CacheSize", "CacheMaxSize"]})
    hook = CacheCountersHook(caches, sink, SamplingConfig(interval_millis=200))
    print(f"  初始化结果: {hook.initialize().value}")

    time.sleep(0.5)
    hook.shutdown()

    for (name, instance), value in sorted(sink.values.items()):
        print(f"  {instance:>6} {name:<14} {value}")
    print(f"  采样统计: {hook.stats.to_dict()}\n")


def demonstrate_prometheus_sink(caches: CacheRegistry) -> None:
    """演示 Prometheus 接收端"""
    print("=== Prometheus 接收端示例 ===\n")

    # 运维人员预先注册计数器定义
    registry = CollectorRegistry()
    for name in ("CacheCount", "CacheSize", "CacheMaxSize"):
        Gauge(f"CacheCounters_{name}", f"Cache {name}", ["instance"], registry=registry)

    sink = PrometheusSink(registry)
    hook = CacheCountersHook(caches, sink, SamplingConfig(sample_max_size=False))
    hook.initialize()
    hook.shutdown()

    print(sink.generate_metrics())


def demonstrate_missing_category(caches: CacheRegistry) -> None:
    """演示类别不存在时自动禁用"""
    print("=== 类别不存在示例 ===\n")

    hook = CacheCountersHook(caches, MemorySink())
    print(f"  初始化结果: {hook.initialize().value}\n")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    html = DemoCache(max_size=8192)
    data = DemoCache(max_size=0)
    for i in range(10):
        html.put(f"page:{i}", b"<html>" * (i + 1))
    data.put("user:1", b"alice")

    caches = CacheRegistry()
    caches.register("html", html)
    caches.register("data", data)

    demonstrate_memory_sink(caches)
    demonstrate_prometheus_sink(caches)
    demonstrate_missing_category(caches)


if __name__ == "__main__":
    main()
