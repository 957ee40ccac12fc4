"""
异常定义模块

本模块定义了缓存计数器库的所有自定义异常类。
所有异常都继承自 CacheCountersError 基类，便于统一捕获。

注意：采样循环内部不会向宿主进程抛出这些异常，
它们只在配置加载、指标接收端操作等边界处使用。
"""

from __future__ import annotations


class CacheCountersError(Exception):
    """
    缓存计数器基础异常

    所有缓存计数器相关的异常都继承自此类。

    示例:
        >>> try:
        ...     config = CacheCountersConfig.from_file("counters.yaml")
        ... except CacheCountersError as e:
        ...     print(f"缓存计数器错误: {e}")
    """

    pass


class CacheCountersConfigError(CacheCountersError):
    """
    配置错误

    当配置验证失败、配置文件解析失败或指标接收端创建失败时抛出。

    示例:
        >>> raise CacheCountersConfigError("配置文件不存在: counters.yaml")
    """

    pass


class MetricSinkError(CacheCountersError):
    """
    指标接收端操作错误

    打开计数器句柄或写入计数器值失败时抛出。
    包括权限不足、网络错误、接收端未就绪等场景。

    示例:
        >>> raise MetricSinkError("无法打开计数器: CacheCounters/CacheCount/html")
    """

    pass


class CounterNotFoundError(MetricSinkError):
    """
    计数器定义不存在

    接收端中找不到对应类别下的计数器定义时抛出。
    计数器定义需要由运维人员预先创建，本库不会自动创建。

    示例:
        >>> raise CounterNotFoundError("计数器未定义: CacheCounters_CacheSize")
    """

    pass
