"""
缓存快照来源模块

定义采样器读取缓存状态的接口，并提供两个常用适配器：

- CallableSource: 包装任意返回快照序列的函数
- CacheRegistry: 按名称登记缓存对象，枚举时读取各缓存的当前状态

使用示例：
    >>> registry = CacheRegistry()
    >>> registry.register("html", html_cache)
    >>> registry.enumerate()
    [CacheStat(name='html', count=42, size=1024, max_size=8192)]
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

from .types import CacheStat


@runtime_checkable
class CacheSnapshotSource(Protocol):
    """
    缓存快照来源协议

    enumerate() 会被反复调用，应当足够廉价，
    每次返回调用时刻登记的全部缓存的最新状态。
    """

    def enumerate(self) -> Sequence[CacheStat]: ...


class CallableSource:
    """把零参数函数适配为 CacheSnapshotSource"""

    def __init__(self, func: Callable[[], Sequence[CacheStat]]) -> None:
        self.func = func

    def enumerate(self) -> Sequence[CacheStat]:
        return list(self.func())

    def __repr__(self) -> str:
        return f"CallableSource(func={self.func!r})"


def read_cache_stat(name: str, cache: Any) -> CacheStat:
    """
    读取缓存对象的当前状态

    读取规则:
    - count: ``cache.count``，没有该属性时使用 ``len(cache)``
    - size: ``cache.size``，没有时为 0
    - max_size: ``cache.max_size``，没有时为 0（表示不限制）

    Args:
        name: 缓存名称
        cache: 缓存对象

    Returns:
        缓存快照
    """
    count = getattr(cache, "count", None)
    if count is None:
        count = len(cache)
    return CacheStat(
        name=name,
        count=int(count),
        size=int(getattr(cache, "size", 0) or 0),
        max_size=int(getattr(cache, "max_size", 0) or 0),
    )


class CacheRegistry:
    """
    缓存注册表

    按登记顺序枚举缓存，线程安全。单个缓存读取失败时异常会向上传播，
    由采样器把本次采样计为失败。

    使用示例:
        >>> registry = CacheRegistry()
        >>> registry.register("html", html_cache)
        >>> registry.register("data", data_cache)
        >>> registry.names()
        ['html', 'data']
    """

    def __init__(self, reader: Callable[[str, Any], CacheStat] = read_cache_stat) -> None:
        """
        初始化注册表

        Args:
            reader: 把 (名称, 缓存对象) 转换为 CacheStat 的函数
        """
        self._reader = reader
        self._caches: dict[str, Any] = {}
        self._lock = threading.RLock()

    def register(self, name: str, cache: Any, *, replace: bool = False) -> None:
        """
        登记缓存

        Args:
            name: 缓存名称（作为计数器实例名）
            cache: 缓存对象
            replace: 名称已存在时是否替换

        Raises:
            ValueError: 名称为空，或名称已存在且 replace=False
        """
        if not name:
            raise ValueError("缓存名称不能为空")
        with self._lock:
            if name in self._caches and not replace:
                msg = f"缓存 '{name}' 已登记"
                raise ValueError(msg)
            self._caches[name] = cache

    def unregister(self, name: str) -> bool:
        """
        注销缓存

        Returns:
            缓存存在并被注销返回 True
        """
        with self._lock:
            return self._caches.pop(name, None) is not None

    def names(self) -> list[str]:
        """返回已登记的缓存名称（登记顺序）"""
        with self._lock:
            return list(self._caches)

    def enumerate(self) -> list[CacheStat]:
        with self._lock:
            items = list(self._caches.items())
        return [self._reader(name, cache) for name, cache in items]

    def __len__(self) -> int:
        with self._lock:
            return len(self._caches)

    def __repr__(self) -> str:
        return f"CacheRegistry(caches={self.names()!r})"
