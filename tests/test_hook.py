"""
钩子测试

测试 CacheCountersHook 的初始化守卫、生命周期和端到端采样。
"""

import asyncio
import logging
import threading
import time

import pytest

from cache_counters import (
    AsyncScheduler,
    CacheCountersConfig,
    CacheCountersHook,
    CacheRegistry,
    CacheStat,
    CallableSource,
    LifecycleState,
    MemorySink,
    MetricSinkError,
    SamplingConfig,
    Scheduler,
)
from cache_counters.types import CATEGORY


class FakeCache:
    """带 count/size/max_size 属性的缓存"""

    def __init__(self, count: int, size: int, max_size: int) -> None:
        self.count = count
        self.size = size
        self.max_size = max_size


class ExplodingSink(MemorySink):
    """检查类别时抛出异常的接收端"""

    def category_exists(self, category: str) -> bool:
        raise MetricSinkError("接收端不可用")


def wait_until(predicate, timeout: float = 3.0) -> bool:
    """轮询等待条件成立"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class TestInitialize:
    """测试初始化守卫"""

    def test_end_to_end_running(self, memory_sink: MemorySink, registry: CacheRegistry) -> None:
        """测试类别存在时立即采样并周期采样"""
        html = FakeCache(count=42, size=1024, max_size=8192)
        registry.register("html", html)
        config = SamplingConfig(
            sample_count=True, sample_size=True, sample_max_size=False, interval_millis=100
        )
        hook = CacheCountersHook(registry, memory_sink, config)

        try:
            assert hook.initialize() is LifecycleState.RUNNING

            # 立即采样
            assert memory_sink.get_value("CacheCount", "html") == 42
            assert memory_sink.get_value("CacheSize", "html") == 1024
            assert hook.stats.passes == 1

            # 第二次采样读取最新值
            html.count = 43
            html.size = 2048
            assert wait_until(lambda: memory_sink.get_value("CacheCount", "html") == 43)
            assert wait_until(lambda: memory_sink.get_value("CacheSize", "html") == 2048)
            assert hook.stats.passes >= 2
        finally:
            hook.shutdown()

        assert all(name != "CacheMaxSize" for _, name, _, _, _ in memory_sink.writes)
        assert memory_sink.get_value("CacheMaxSize", "html") is None

    def test_category_missing(
        self, empty_sink: MemorySink, html_stat: CacheStat, caplog: pytest.LogCaptureFixture
    ) -> None:
        """测试类别不存在时禁用，只记录一次警告"""
        calls: list[int] = []

        def enumerate_caches() -> list[CacheStat]:
            calls.append(1)
            return [html_stat]

        hook = CacheCountersHook(CallableSource(enumerate_caches), empty_sink)

        with caplog.at_level(logging.WARNING, logger="cache_counters"):
            assert hook.initialize() is LifecycleState.DISABLED

        assert hook.scheduler is None
        assert calls == []
        assert empty_sink.writes == []
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert CATEGORY in warnings[0].getMessage()

        # 禁用后 tick 不执行采样
        for _ in range(5):
            assert hook.tick() is False
        assert calls == []
        assert hook.stats.passes == 0

    def test_unexpected_error_disables(
        self, html_stat: CacheStat, caplog: pytest.LogCaptureFixture
    ) -> None:
        """测试检查过程异常时禁用且不抛出"""
        hook = CacheCountersHook(CallableSource(lambda: [html_stat]), ExplodingSink())

        with caplog.at_level(logging.ERROR, logger="cache_counters.hook"):
            assert hook.initialize() is LifecycleState.DISABLED

        assert hook.scheduler is None
        assert "初始化失败" in caplog.text
        assert caplog.records[-1].exc_info is not None

    def test_scheduler_start_failure_stops_timer(
        self,
        memory_sink: MemorySink,
        html_stat: CacheStat,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """测试调度器启动失败时停止已创建的调度器"""
        created: list[Scheduler] = []
        original_start = Scheduler.start

        def failing_start(self: Scheduler) -> None:
            created.append(self)
            original_start(self)
            raise RuntimeError("线程创建失败")

        monkeypatch.setattr(Scheduler, "start", failing_start)
        hook = CacheCountersHook(
            CallableSource(lambda: [html_stat]),
            memory_sink,
            SamplingConfig(interval_millis=10),
        )

        assert hook.initialize() is LifecycleState.DISABLED
        assert hook.scheduler is None
        assert len(created) == 1
        assert not created[0].is_running

        created[0].join(1.0)
        writes = len(memory_sink.writes)
        time.sleep(0.05)
        assert len(memory_sink.writes) == writes

    def test_initialize_while_running(self, memory_sink: MemorySink, html_stat: CacheStat) -> None:
        """测试运行中重复初始化不会再次采样"""
        hook = CacheCountersHook(
            CallableSource(lambda: [html_stat]), memory_sink, SamplingConfig(interval_millis=60000)
        )
        try:
            hook.initialize()
            scheduler = hook.scheduler

            assert hook.initialize() is LifecycleState.RUNNING
            assert hook.scheduler is scheduler
            assert hook.stats.passes == 1
        finally:
            hook.shutdown()

    def test_reinitialize_after_disabled(self, html_stat: CacheStat) -> None:
        """测试类别创建后重新初始化可恢复"""
        sink = MemorySink()
        hook = CacheCountersHook(
            CallableSource(lambda: [html_stat]), sink, SamplingConfig(interval_millis=60000)
        )
        assert hook.initialize() is LifecycleState.DISABLED

        sink._categories[CATEGORY] = {"CacheCount", "CacheSize", "CacheMaxSize"}
        try:
            assert hook.initialize() is LifecycleState.RUNNING
            assert sink.get_value("CacheCount", "html") == 42
        finally:
            hook.shutdown()


class TestLifecycle:
    """测试运行期操作"""

    def test_initial_state(self, memory_sink: MemorySink, registry: CacheRegistry) -> None:
        """测试初始状态"""
        hook = CacheCountersHook(registry, memory_sink)

        assert hook.state is LifecycleState.UNINITIALIZED
        assert hook.tick() is False
        assert "uninitialized" in repr(hook)

    def test_shutdown_stops_sampling(self, memory_sink: MemorySink, html_stat: CacheStat) -> None:
        """测试停止后进入 DISABLED，重复 tick 零采样"""
        hook = CacheCountersHook(
            CallableSource(lambda: [html_stat]), memory_sink, SamplingConfig(interval_millis=10)
        )
        hook.initialize()
        scheduler = hook.scheduler
        assert isinstance(scheduler, Scheduler)

        hook.shutdown()
        scheduler.join(1.0)
        passes = hook.stats.passes
        writes = len(memory_sink.writes)

        assert hook.state is LifecycleState.DISABLED
        for _ in range(5):
            assert hook.tick() is False
            assert scheduler.tick() is False
        time.sleep(0.05)
        assert hook.stats.passes == passes
        assert len(memory_sink.writes) == writes

    def test_manual_tick(self, memory_sink: MemorySink, html_stat: CacheStat) -> None:
        """测试运行中手动触发采样"""
        hook = CacheCountersHook(
            CallableSource(lambda: [html_stat]), memory_sink, SamplingConfig(interval_millis=60000)
        )
        try:
            hook.initialize()
            assert hook.tick() is True
            assert hook.stats.passes == 2
        finally:
            hook.shutdown()

    def test_replace_config(self, memory_sink: MemorySink, html_stat: CacheStat) -> None:
        """测试替换配置从下一次采样开始生效"""
        hook = CacheCountersHook(
            CallableSource(lambda: [html_stat]),
            memory_sink,
            SamplingConfig(sample_count=True, sample_size=False, sample_max_size=False,
                           interval_millis=60000),
        )
        try:
            hook.initialize()
            assert memory_sink.get_value("CacheMaxSize", "html") is None

            new_config = SamplingConfig(
                sample_count=False, sample_size=False, sample_max_size=True, interval_millis=30000
            )
            hook.replace_config(new_config)
            hook.tick()

            assert hook.config is new_config
            assert hook.scheduler is not None
            assert hook.scheduler.interval == 30.0
            assert memory_sink.get_value("CacheMaxSize", "html") == 8192
        finally:
            hook.shutdown()

    def test_enumeration_failure_keeps_running(self, memory_sink: MemorySink) -> None:
        """测试枚举失败不影响调度"""
        calls: list[int] = []

        def flaky() -> list[CacheStat]:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("注册表不可用")
            return [CacheStat(name="html", count=1, size=1, max_size=1)]

        hook = CacheCountersHook(
            CallableSource(flaky), memory_sink, SamplingConfig(interval_millis=10)
        )
        try:
            assert hook.initialize() is LifecycleState.RUNNING
            assert hook.stats.failed_passes == 1
            assert wait_until(lambda: memory_sink.get_value("CacheCount", "html") == 1)
            assert hook.is_running
        finally:
            hook.shutdown()

    def test_from_config(self, registry: CacheRegistry) -> None:
        """测试从完整配置创建"""
        config = CacheCountersConfig(
            sink="memory",
            sink_options={"categories": {"Custom": ["CacheCount"]}},
            category="Custom",
            sampling={"sample_size": False, "sample_max_size": False, "interval_millis": 60000},
        )
        registry.register("html", FakeCache(count=5, size=0, max_size=0))

        hook = CacheCountersHook.from_config(config, registry)
        try:
            assert hook.initialize() is LifecycleState.RUNNING
            assert isinstance(hook.sink, MemorySink)
            assert hook.sink.get_value("CacheCount", "html") == 5
        finally:
            hook.shutdown()


class TestAsyncLifecycle:
    """测试 asyncio 宿主"""

    @pytest.mark.asyncio
    async def test_ainitialize_and_shutdown(
        self, memory_sink: MemorySink, html_stat: CacheStat
    ) -> None:
        """测试异步初始化和停止"""
        hook = CacheCountersHook(
            CallableSource(lambda: [html_stat]), memory_sink, SamplingConfig(interval_millis=60000)
        )

        assert await hook.ainitialize() is LifecycleState.RUNNING
        assert memory_sink.get_value("CacheCount", "html") == 42
        assert await hook.atick() is True
        assert hook.tick() is False  # 异步调度器只能通过 atick 触发

        await hook.ashutdown()

        assert hook.state is LifecycleState.DISABLED
        assert await hook.atick() is False
        assert hook.stats.passes == 2

    @pytest.mark.asyncio
    async def test_ainitialize_category_missing(
        self, empty_sink: MemorySink, html_stat: CacheStat
    ) -> None:
        """测试异步初始化时类别不存在"""
        hook = CacheCountersHook(CallableSource(lambda: [html_stat]), empty_sink)

        assert await hook.ainitialize() is LifecycleState.DISABLED
        assert empty_sink.writes == []

    @pytest.mark.asyncio
    async def test_ainitialize_unexpected_error(self, html_stat: CacheStat) -> None:
        """测试异步初始化异常"""
        hook = CacheCountersHook(CallableSource(lambda: [html_stat]), ExplodingSink())

        assert await hook.ainitialize() is LifecycleState.DISABLED

    @pytest.mark.asyncio
    async def test_sync_shutdown_from_other_thread(
        self, memory_sink: MemorySink, html_stat: CacheStat
    ) -> None:
        """测试其他线程调用 shutdown() 能停止异步调度器"""
        hook = CacheCountersHook(
            CallableSource(lambda: [html_stat]), memory_sink, SamplingConfig(interval_millis=10)
        )
        assert await hook.ainitialize() is LifecycleState.RUNNING
        scheduler = hook.scheduler
        assert isinstance(scheduler, AsyncScheduler)

        await asyncio.to_thread(hook.shutdown)

        assert hook.state is LifecycleState.DISABLED
        assert not scheduler.is_running
        # 调度任务被唤醒并退出
        await asyncio.wait_for(scheduler.stop(), timeout=2.0)
        passes = hook.stats.passes
        await asyncio.sleep(0.05)
        assert hook.stats.passes == passes


class TestReinitialize:
    """测试停止后重新初始化时采样不重叠"""

    def test_shutdown_then_initialize_during_slow_pass(self, memory_sink: MemorySink) -> None:
        """测试旧调度器的采样进行中重新初始化，两次采样不交错"""
        slow_pass_started = threading.Event()
        lock = threading.Lock()
        state = {"calls": 0, "active": 0, "max": 0}

        def enumerate_caches() -> list[CacheStat]:
            with lock:
                state["calls"] += 1
                call = state["calls"]
                state["active"] += 1
                state["max"] = max(state["max"], state["active"])
            try:
                if call == 2:
                    slow_pass_started.set()
                    time.sleep(0.3)
                # 每次采样写入的值等于采样序号
                return [
                    CacheStat(name=f"cache{i}", count=call, size=call, max_size=call)
                    for i in range(3)
                ]
            finally:
                with lock:
                    state["active"] -= 1

        hook = CacheCountersHook(
            CallableSource(enumerate_caches), memory_sink, SamplingConfig(interval_millis=20)
        )
        assert hook.initialize() is LifecycleState.RUNNING
        retired = hook.scheduler
        assert isinstance(retired, Scheduler)
        assert slow_pass_started.wait(2.0)

        hook.shutdown()
        assert hook.initialize() is LifecycleState.RUNNING
        current = hook.scheduler
        hook.shutdown()
        retired.join(2.0)
        assert isinstance(current, Scheduler)
        current.join(2.0)

        assert state["max"] == 1

        spans: dict[int, list[float]] = {}
        for *_, value, timestamp in memory_sink.writes:
            spans.setdefault(value, []).append(timestamp)
        assert {1, 2, 3} <= set(spans)
        assert all(len(stamps) == 9 for stamps in spans.values())

        # 按开始时间排序后，每次采样的最后一次写入早于下一次采样的第一次写入
        ordered = sorted((min(stamps), max(stamps), value) for value, stamps in spans.items())
        for (_, end, value), (start, _, next_value) in zip(ordered, ordered[1:]):
            assert end <= start, f"采样 {value} 与采样 {next_value} 的写入交错"
        assert [value for _, _, value in ordered][:3] == [1, 2, 3]
