"""
调度器模块

按固定间隔驱动采样任务，保证任意时刻最多只有一次采样在执行。

调度规则：
- 启动时立即在调用线程上同步执行一次采样，运维人员无需等待一个完整间隔
- 之后每次采样完成后等待 interval 秒再开始下一次（间隔从上次完成时算起，
  而不是固定频率触发），采样变慢时下一次自动顺延，不会并发执行
- stop() 随时可调用（包括采样进行中），只阻止之后的调度，不中断进行中的采样

提供两种实现：
- Scheduler: 守护线程 + threading.Event，适用于同步宿主
- AsyncScheduler: asyncio 任务，适用于运行事件循环的宿主

使用示例：
    >>> scheduler = Scheduler(lambda: sampler.sample(source, config), interval=10.0)
    >>> scheduler.start()
    >>> ...
    >>> scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class Scheduler:
    """
    基于线程的非重叠周期调度器

    调度器只能启动一次，停止后需要创建新的实例。

    Attributes:
        interval: 两次采样之间的等待时间（秒）
        name: 后台线程名称
        pass_count: 已执行的采样次数
    """

    def __init__(
        self,
        task: Callable[[], Any],
        interval: float,
        name: str = "cache-counters-sampler",
    ) -> None:
        """
        初始化调度器

        Args:
            task: 每次触发时执行的采样任务
            interval: 采样间隔（秒），必须大于 0
            name: 后台线程名称

        Raises:
            ValueError: interval 不大于 0
        """
        if interval <= 0:
            msg = f"采样间隔必须大于 0: {interval}"
            raise ValueError(msg)

        self._task = task
        self.interval = interval
        self.name = name
        self.pass_count = 0

        self._started = False
        self._stop_event = threading.Event()
        # 串行化后台线程和手动 tick()
        self._pass_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """调度器已启动且未停止"""
        return self._started and not self._stop_event.is_set()

    def start(self) -> None:
        """
        启动调度器

        先在当前线程同步执行一次采样，然后启动后台线程。

        Raises:
            RuntimeError: 调度器已经启动过
        """
        if self._started:
            raise RuntimeError("调度器已启动，停止后需要创建新的实例")
        self._started = True

        self.tick()

        # 首次采样期间可能已被停止
        if self._stop_event.is_set():
            return

        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,  # 守护线程，主程序退出时自动终止
            name=self.name,
        )
        self._thread.start()

    def _run_loop(self) -> None:
        """后台调度循环"""
        while not self._stop_event.wait(self.interval):
            self.tick()

    def tick(self) -> bool:
        """
        执行一次采样

        调度器未运行时不执行任何操作。

        Returns:
            执行了采样返回 True
        """
        if not self.is_running:
            return False

        with self._pass_lock:
            if self._stop_event.is_set():
                return False
            self._run_task()
        return True

    def _run_task(self) -> None:
        try:
            self._task()
        except Exception:
            logger.exception("采样任务异常，将在下一个周期重试")
        finally:
            self.pass_count += 1

    def stop(self) -> None:
        """
        停止调度

        立即阻止之后的采样，不中断进行中的采样，也不等待其完成。
        """
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        """
        等待后台线程退出

        在后台线程内部调用时直接返回（例如采样任务中调用）。

        Args:
            timeout: 最长等待时间（秒），None 表示一直等待
        """
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout)

    def __repr__(self) -> str:
        return (
            f"Scheduler(interval={self.interval}, running={self.is_running}, "
            f"passes={self.pass_count})"
        )


class AsyncScheduler:
    """
    基于 asyncio 的非重叠周期调度器

    采样任务通过 asyncio.to_thread 在线程中执行，不阻塞事件循环。
    调度器只能启动一次。
    """

    def __init__(
        self,
        task: Callable[[], Any],
        interval: float,
        name: str = "cache-counters-sampler",
    ) -> None:
        """
        初始化异步调度器

        Args:
            task: 每次触发时执行的采样任务（同步函数）
            interval: 采样间隔（秒），必须大于 0
            name: 调度任务名称

        Raises:
            ValueError: interval 不大于 0
        """
        if interval <= 0:
            msg = f"采样间隔必须大于 0: {interval}"
            raise ValueError(msg)

        self._task = task
        self.interval = interval
        self.name = name
        self.pass_count = 0

        self._started = False
        self._cancelled = False
        self._stop_event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pass_lock = asyncio.Lock()
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """调度器已启动且未停止"""
        return self._started and not self._cancelled

    async def start(self) -> None:
        """
        启动调度器

        先执行一次采样并等待其完成，然后创建后台调度任务。

        Raises:
            RuntimeError: 调度器已经启动过
        """
        if self._started:
            raise RuntimeError("调度器已启动，停止后需要创建新的实例")
        self._started = True
        self._loop = asyncio.get_running_loop()

        await self.tick()

        if self._cancelled:
            return

        self._loop_task = asyncio.create_task(self._run_loop(), name=self.name)

    async def _run_loop(self) -> None:
        """后台调度循环"""
        while True:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                return
            except asyncio.TimeoutError:
                pass
            await self.tick()

    async def tick(self) -> bool:
        """
        执行一次采样

        Returns:
            执行了采样返回 True
        """
        if not self.is_running:
            return False

        async with self._pass_lock:
            if self._cancelled:
                return False
            try:
                await asyncio.to_thread(self._task)
            except Exception:
                logger.exception("采样任务异常，将在下一个周期重试")
            finally:
                self.pass_count += 1
        return True

    def cancel(self) -> None:
        """
        阻止之后的采样，不等待进行中的采样

        可以在任意线程调用：其他线程调用时通过 call_soon_threadsafe
        唤醒事件循环中的调度任务。
        """
        self._cancelled = True
        loop = self._loop
        if loop is None or loop.is_closed():
            self._stop_event.set()
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._stop_event.set()
        else:
            loop.call_soon_threadsafe(self._stop_event.set)

    async def stop(self) -> None:
        """
        停止调度

        阻止之后的采样，并等待进行中的采样完成。
        """
        self.cancel()
        loop_task = self._loop_task
        if loop_task is not None and loop_task is not asyncio.current_task():
            await loop_task

    def __repr__(self) -> str:
        return (
            f"AsyncScheduler(interval={self.interval}, running={self.is_running}, "
            f"passes={self.pass_count})"
        )
