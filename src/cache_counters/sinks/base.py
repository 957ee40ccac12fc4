"""
指标接收端抽象基类模块

本模块定义了所有指标接收端（sink）必须实现的接口。
接收端以"类别 / 计数器名称 / 实例名称"三级命名组织计数器，
类别和计数器定义由运维人员预先创建，本库只打开已有定义下的实例句柄。

核心概念：
- 类别（category）：一组计数器定义的命名空间，例如 CacheCounters
- 计数器（counter）：类别中的一个指标定义，例如 CacheCount
- 实例（instance）：同一计数器下按缓存名称区分的序列
- 句柄（handle）：指向某个计数器实例的可复用引用
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class CounterHandle(ABC):
    """
    计数器句柄抽象基类

    句柄创建代价较高，应当被缓存并在多次采样之间复用。
    """

    def __init__(self, category: str, name: str, instance: str) -> None:
        self.category = category
        self.name = name
        self.instance = instance

    @abstractmethod
    def set_value(self, value: int) -> None:
        """
        设置计数器当前值

        Args:
            value: 新的计数器值

        Raises:
            MetricSinkError: 写入失败
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(category={self.category!r}, "
            f"name={self.name!r}, instance={self.instance!r})"
        )


class BaseMetricSink(ABC):
    """
    指标接收端抽象基类

    所有接收端（Memory、Prometheus、StatsD）都必须继承此类并实现抽象方法。

    使用示例：
        >>> sink = MemorySink({"CacheCounters": ["CacheCount"]})
        >>> sink.category_exists("CacheCounters")
        True
        >>> handle = sink.open_counter("CacheCounters", "CacheCount", "html")
        >>> handle.set_value(42)
    """

    @abstractmethod
    def category_exists(self, category: str) -> bool:
        """
        检查类别是否已预先创建

        Args:
            category: 类别名称

        Returns:
            类别存在返回 True，否则返回 False

        Raises:
            MetricSinkError: 检查过程本身出错（不是"类别不存在"）
        """
        raise NotImplementedError

    @abstractmethod
    def open_counter(self, category: str, name: str, instance: str) -> CounterHandle:
        """
        打开（必要时创建实例）计数器句柄

        只会创建计数器实例，不会创建类别或计数器定义。

        Args:
            category: 类别名称
            name: 计数器名称
            instance: 实例名称（缓存名称）

        Returns:
            计数器句柄

        Raises:
            CounterNotFoundError: 计数器定义不存在
            MetricSinkError: 其他打开失败的情况
        """
        raise NotImplementedError

    def close(self) -> None:
        """
        关闭接收端，释放底层资源

        默认实现为空操作，需要释放连接的子类应当重写。
        """

    def __enter__(self) -> BaseMetricSink:
        """上下文管理器：进入"""
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """上下文管理器：退出"""
        self.close()
