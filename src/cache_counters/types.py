"""
类型定义模块

本模块定义了缓存计数器的核心数据类型、枚举和常量。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# ========== 常量定义 ==========

CATEGORY = "CacheCounters"
"""指标接收端中的计数器类别名称"""

HandleKey = tuple[str, str]
"""句柄缓存键类型：(指标名称, 实例名称)"""


# ========== 数据类定义 ==========


@dataclass(frozen=True)
class CacheStat:
    """
    缓存状态快照

    每次枚举缓存时重新生成，只在一次采样中使用，不会被长期持有。

    Attributes:
        name: 缓存名称（唯一，作为计数器实例名）
        count: 当前缓存条目数
        size: 当前缓存大小（字节）
        max_size: 配置的最大缓存大小（字节），0 表示不限制
    """

    name: str  # 缓存名称
    count: int  # 当前条目数
    size: int  # 当前大小（字节）
    max_size: int  # 最大大小（字节）

    def __post_init__(self) -> None:
        for field_name in ("count", "size", "max_size"):
            if getattr(self, field_name) < 0:
                msg = f"{field_name} 不能为负数: {getattr(self, field_name)}"
                raise ValueError(msg)


# ========== 枚举定义 ==========


class MetricKind(str, Enum):
    """
    指标种类枚举

    每种指标对应接收端中一个固定的计数器名称：
    - COUNT: 缓存条目数 -> CacheCount
    - SIZE: 缓存大小 -> CacheSize
    - MAX_SIZE: 最大缓存大小 -> CacheMaxSize
    """

    COUNT = "CacheCount"  # 条目数
    SIZE = "CacheSize"  # 当前大小
    MAX_SIZE = "CacheMaxSize"  # 最大大小

    @property
    def counter_name(self) -> str:
        """接收端中的计数器名称"""
        return self.value

    def read(self, stat: CacheStat) -> int:
        """从缓存快照中读取本指标对应的值"""
        if self is MetricKind.COUNT:
            return stat.count
        if self is MetricKind.SIZE:
            return stat.size
        return stat.max_size


class LifecycleState(str, Enum):
    """
    生命周期状态枚举

    - UNINITIALIZED: 尚未初始化
    - RUNNING: 类别检查通过，正在周期性采样
    - DISABLED: 已禁用，不再调度任何采样（需重新初始化才能恢复）
    """

    UNINITIALIZED = "uninitialized"  # 未初始化
    RUNNING = "running"  # 运行中
    DISABLED = "disabled"  # 已禁用


__all__ = [
    "CATEGORY",
    "HandleKey",
    "CacheStat",
    "MetricKind",
    "LifecycleState",
]
