"""
StatsD 指标接收端模块

通过 UDP 以 StatsD Gauge 格式发送缓存计数器，
进而存储到 Graphite、InfluxDB 等时序数据库。

指标路径：``{prefix}.{category}.{counter}.{instance}``，
实例名称中的 StatsD 保留字符（``.`` ``:`` ``|`` ``@`` 和空白）会被替换为下划线。

StatsD 没有服务端定义，因此"类别已创建"由构造参数 ``categories`` 声明。

使用示例：
    >>> sink = StatsDSink(host="localhost", port=8125, prefix="app")
    >>> handle = sink.open_counter("CacheCounters", "CacheSize", "html")
    >>> handle.set_value(1024)   # 发送 "app.CacheCounters.CacheSize.html:1024|g"
"""

from __future__ import annotations

import logging
import re
import socket
import threading
from typing import TYPE_CHECKING

from ..exceptions import MetricSinkError
from ..types import CATEGORY
from .base import BaseMetricSink, CounterHandle

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

_RESERVED_CHARS = re.compile(r"[.:|@\s]")


class StatsDCounterHandle(CounterHandle):
    """StatsD 计数器句柄，保存预先格式化的指标路径"""

    def __init__(self, sink: StatsDSink, category: str, name: str, instance: str) -> None:
        super().__init__(category, name, instance)
        self._sink = sink
        self.path = sink.format_metric_name(category, name, instance)

    def set_value(self, value: int) -> None:
        self._sink.send(f"{self.path}:{int(value)}|g")


class StatsDSink(BaseMetricSink):
    """
    StatsD 指标接收端

    使用单个非连接 UDP 套接字发送指标，套接字在首次打开句柄时创建。
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8125,
        prefix: str = "",
        categories: Iterable[str] = (CATEGORY,),
    ) -> None:
        """
        初始化 StatsD 接收端

        Args:
            host: StatsD 服务器主机
            port: StatsD 服务器端口
            prefix: 指标前缀，空字符串表示不加前缀
            categories: 视为已创建的类别名称
        """
        self.host = host
        self.port = port
        self.prefix = prefix.strip(".")
        self.categories = frozenset(categories)
        self._socket: socket.socket | None = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """
        创建 UDP 套接字

        Raises:
            MetricSinkError: 套接字创建失败
        """
        with self._lock:
            if self._socket is not None:
                return
            try:
                self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            except OSError as e:
                msg = f"创建 StatsD 套接字失败: {e}"
                raise MetricSinkError(msg) from e

    def close(self) -> None:
        with self._lock:
            if self._socket is not None:
                self._socket.close()
                self._socket = None

    @property
    def is_connected(self) -> bool:
        return self._socket is not None

    def format_metric_name(self, category: str, name: str, instance: str) -> str:
        """
        生成完整的指标路径

        Args:
            category: 类别名称
            name: 计数器名称
            instance: 实例名称

        Returns:
            形如 ``prefix.category.name.instance`` 的路径
        """
        parts = [category, name, _RESERVED_CHARS.sub("_", instance)]
        if self.prefix:
            parts.insert(0, self.prefix)
        return ".".join(parts)

    def category_exists(self, category: str) -> bool:
        return category in self.categories

    def open_counter(self, category: str, name: str, instance: str) -> CounterHandle:
        if category not in self.categories:
            msg = f"StatsD 类别未声明: {category}"
            raise MetricSinkError(msg)
        self.connect()
        return StatsDCounterHandle(self, category, name, instance)

    def send(self, line: str) -> None:
        """
        发送单行 StatsD 指标

        Raises:
            MetricSinkError: 未连接或发送失败
        """
        sock = self._socket
        if sock is None:
            msg = "StatsD 套接字未连接"
            raise MetricSinkError(msg)
        try:
            sock.sendto(line.encode("utf-8"), (self.host, self.port))
        except OSError as e:
            msg = f"UDP 发送失败: {e}"
            raise MetricSinkError(msg) from e

    def __repr__(self) -> str:
        return f"StatsDSink(host={self.host!r}, port={self.port}, prefix={self.prefix!r})"

    def __del__(self) -> None:
        """析构函数"""
        if getattr(self, "_socket", None) is not None:
            self._socket.close()
