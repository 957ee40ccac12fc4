"""
缓存计数器钩子模块

宿主框架在启动时调用 initialize()，钩子检查接收端中的计数器类别是否已预先创建：

- 类别存在：进入 RUNNING 状态，立即采样一次并开始周期性采样
- 类别不存在：记录一次警告，进入 DISABLED 状态，不调度任何采样
- 检查或启动过程中出现意外异常：停止已启动的调度器，记录错误，进入 DISABLED 状态

任何情况下都不会把异常抛给宿主进程；缓存指标缺失不影响宿主正常运行。
钩子不会创建类别，类别需要由具备相应权限的运维人员预先创建。

使用示例:
    >>> hook = CacheCountersHook(registry, sink, SamplingConfig(interval_millis=5000))
    >>> hook.initialize()
    <LifecycleState.RUNNING: 'running'>
    >>> ...
    >>> hook.shutdown()
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .config import SamplingConfig
from .handles import MetricHandleCache
from .sampler import Sampler
from .scheduler import AsyncScheduler, Scheduler
from .types import CATEGORY, LifecycleState

if TYPE_CHECKING:
    from .config import CacheCountersConfig
    from .sampler import SamplerStats
    from .sinks.base import BaseMetricSink
    from .sources import CacheSnapshotSource

logger = logging.getLogger(__name__)


class CacheCountersHook:
    """
    缓存计数器钩子

    状态转换:
    - UNINITIALIZED -> RUNNING: 类别检查通过
    - UNINITIALIZED -> DISABLED: 类别不存在或初始化失败
    - RUNNING -> DISABLED: shutdown() 或启动失败
    - DISABLED -> RUNNING / DISABLED: 重新调用 initialize()

    DISABLED 状态下不会执行任何采样。
    钩子不拥有接收端，shutdown() 不会关闭接收端。
    """

    def __init__(
        self,
        source: CacheSnapshotSource,
        sink: BaseMetricSink,
        config: SamplingConfig | None = None,
        category: str = CATEGORY,
    ) -> None:
        """
        初始化钩子

        Args:
            source: 缓存快照来源
            sink: 指标接收端（需预先创建类别）
            config: 采样配置，None 使用默认配置
            category: 计数器类别名称
        """
        self.source = source
        self.sink = sink
        self.category = category
        self._config = config if config is not None else SamplingConfig()
        self.handles = MetricHandleCache(sink)
        self.sampler = Sampler(self.handles, category)
        self._scheduler: Scheduler | AsyncScheduler | None = None
        self._state = LifecycleState.UNINITIALIZED
        self._lock = threading.RLock()
        # 跨调度器实例串行化采样：shutdown() 后旧线程的采样可能仍在进行，
        # 重新 initialize() 的首次采样必须等它结束
        self._pass_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: CacheCountersConfig,
        source: CacheSnapshotSource,
    ) -> CacheCountersHook:
        """
        根据完整配置创建钩子

        Args:
            config: 缓存计数器配置
            source: 缓存快照来源

        Returns:
            钩子实例

        Raises:
            CacheCountersConfigError: 接收端创建失败
        """
        return cls(source, config.create_sink(), config.sampling, config.category)

    # ========== 属性 ==========

    @property
    def state(self) -> LifecycleState:
        """当前生命周期状态"""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is LifecycleState.RUNNING

    @property
    def config(self) -> SamplingConfig:
        """当前采样配置"""
        return self._config

    @property
    def scheduler(self) -> Scheduler | AsyncScheduler | None:
        return self._scheduler

    @property
    def stats(self) -> SamplerStats:
        """采样统计信息"""
        return self.sampler.stats

    # ========== 生命周期 ==========

    def initialize(self) -> LifecycleState:
        """
        初始化并启动周期采样（同步宿主）

        Returns:
            初始化后的状态（RUNNING 或 DISABLED）
        """
        with self._lock:
            if self._state is LifecycleState.RUNNING:
                logger.info("缓存计数器已在运行，忽略重复初始化")
                return self._state

            logger.info("初始化缓存计数器 (category=%s)", self.category)
            scheduler: Scheduler | None = None
            try:
                if not self._category_ready():
                    return self._state

                scheduler = Scheduler(self._run_sample, self._config.interval_seconds)
                self._scheduler = scheduler
                self._state = LifecycleState.RUNNING
                scheduler.start()
            except Exception:
                if scheduler is not None:
                    scheduler.stop()
                self._scheduler = None
                self._state = LifecycleState.DISABLED
                logger.error("缓存计数器初始化失败，已禁用", exc_info=True)

            return self._state

    async def ainitialize(self) -> LifecycleState:
        """
        初始化并启动周期采样（asyncio 宿主）

        必须在事件循环所在线程调用。状态转换在 self._lock 内完成，
        await 期间不持有锁；其他线程的 shutdown() 可以随时生效。

        Returns:
            初始化后的状态（RUNNING 或 DISABLED）
        """
        with self._lock:
            if self._state is LifecycleState.RUNNING:
                logger.info("缓存计数器已在运行，忽略重复初始化")
                return self._state

            logger.info("初始化缓存计数器 (category=%s)", self.category)
            try:
                if not self._category_ready():
                    return self._state
            except Exception:
                self._state = LifecycleState.DISABLED
                logger.error("缓存计数器初始化失败，已禁用", exc_info=True)
                return self._state

            scheduler = AsyncScheduler(self._run_sample, self._config.interval_seconds)
            self._scheduler = scheduler
            self._state = LifecycleState.RUNNING

        try:
            await scheduler.start()
        except Exception:
            await scheduler.stop()
            with self._lock:
                # 启动期间可能已被 shutdown() 或新的 initialize() 接管
                if self._scheduler is scheduler:
                    self._scheduler = None
                    self._state = LifecycleState.DISABLED
            logger.error("缓存计数器初始化失败，已禁用", exc_info=True)

        return self._state

    def _category_ready(self) -> bool:
        """
        检查计数器类别，不存在时切换到 DISABLED

        Raises:
            Exception: 检查过程本身出错，由调用方处理
        """
        if self.sink.category_exists(self.category):
            return True

        logger.warning(
            "计数器类别 %r 不存在，缓存计数器已禁用（类别需由运维人员预先创建）",
            self.category,
        )
        self._state = LifecycleState.DISABLED
        return False

    def shutdown(self) -> None:
        """
        停止周期采样并进入 DISABLED 状态

        不中断进行中的采样，也不等待其完成。进行中的采样仍持有采样锁，
        随后的 initialize() 会在首次采样前等待它结束。
        可以在任意线程调用，包括停止异步调度器。
        """
        with self._lock:
            scheduler = self._scheduler
            if isinstance(scheduler, Scheduler):
                scheduler.stop()
            elif isinstance(scheduler, AsyncScheduler):
                # 同步路径无法等待异步调度器，只阻止后续调度
                scheduler.cancel()
            self._scheduler = None
            if self._state is not LifecycleState.DISABLED:
                logger.info("缓存计数器已停止")
            self._state = LifecycleState.DISABLED

    async def ashutdown(self) -> None:
        """
        停止周期采样并等待进行中的采样完成

        必须在事件循环所在线程调用。
        """
        with self._lock:
            scheduler = self._scheduler
            self._scheduler = None
            if self._state is not LifecycleState.DISABLED:
                logger.info("缓存计数器已停止")
            self._state = LifecycleState.DISABLED

        if isinstance(scheduler, AsyncScheduler):
            await scheduler.stop()
        elif isinstance(scheduler, Scheduler):
            scheduler.stop()

    # ========== 采样 ==========

    def tick(self) -> bool:
        """
        手动触发一次采样（线程调度器）

        只在 RUNNING 状态下执行，与周期采样串行。

        Returns:
            执行了采样返回 True
        """
        scheduler = self._scheduler
        if self._state is not LifecycleState.RUNNING or not isinstance(scheduler, Scheduler):
            return False
        return scheduler.tick()

    async def atick(self) -> bool:
        """
        手动触发一次采样（异步调度器）

        Returns:
            执行了采样返回 True
        """
        scheduler = self._scheduler
        if self._state is not LifecycleState.RUNNING or not isinstance(
            scheduler, AsyncScheduler
        ):
            return False
        return await scheduler.tick()

    def replace_config(self, config: SamplingConfig) -> None:
        """
        整体替换采样配置

        新配置从下一次采样开始生效，进行中的采样继续使用旧配置。

        Args:
            config: 新的采样配置
        """
        self._config = config
        scheduler = self._scheduler
        if scheduler is not None:
            scheduler.interval = config.interval_seconds
        logger.info("采样配置已更新: %r", config)

    def _run_sample(self) -> None:
        """
        调度器回调：每次采样只读取一次配置引用

        不可在采样过程中（例如缓存枚举回调里）重新调用 initialize()。
        """
        with self._pass_lock:
            self.sampler.sample(self.source, self._config)

    def __repr__(self) -> str:
        return (
            f"CacheCountersHook(state={self._state.value}, category={self.category!r}, "
            f"sink={self.sink!r})"
        )
