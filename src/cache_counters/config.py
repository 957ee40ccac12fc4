"""
配置管理模块

使用 Pydantic 进行配置验证和管理，支持从配置文件、环境变量、字典加载。

使用示例:
    >>> # 只配置采样
    >>> sampling = SamplingConfig(sample_max_size=False, interval_millis=5000)
    >>>
    >>> # 完整配置（接收端 + 采样）
    >>> config = CacheCountersConfig(sink="statsd", sink_options={"port": 8125})
    >>>
    >>> # 从 YAML 文件创建
    >>> config = CacheCountersConfig.from_file("counters.yaml")
    >>>
    >>> # 从环境变量创建
    >>> config = CacheCountersConfig.from_env()
    >>>
    >>> # 自动实例化接收端
    >>> sink = config.create_sink()
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .exceptions import CacheCountersConfigError
from .types import CATEGORY, MetricKind

if TYPE_CHECKING:
    from collections.abc import Callable

    from .sinks import BaseMetricSink


class SamplingConfig(BaseModel):
    """
    采样配置

    构造后不可修改；运行中需要调整时，构造新配置并通过
    CacheCountersHook.replace_config() 整体替换，避免采样过程中读到半更新的状态。

    属性:
        sample_count: 是否采样缓存条目数
        sample_size: 是否采样缓存大小
        sample_max_size: 是否采样最大缓存大小
        interval_millis: 采样间隔（毫秒）
    """

    sample_count: bool = Field(default=True, description="是否采样缓存条目数")
    sample_size: bool = Field(default=True, description="是否采样缓存大小")
    sample_max_size: bool = Field(default=True, description="是否采样最大缓存大小")
    interval_millis: int = Field(default=10000, gt=0, description="采样间隔（毫秒）")

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @property
    def interval_seconds(self) -> float:
        """采样间隔（秒）"""
        return self.interval_millis / 1000

    def enabled_kinds(self) -> tuple[MetricKind, ...]:
        """
        返回启用的指标种类

        顺序固定为 Count、Size、MaxSize。
        """
        flags = (
            (MetricKind.COUNT, self.sample_count),
            (MetricKind.SIZE, self.sample_size),
            (MetricKind.MAX_SIZE, self.sample_max_size),
        )
        return tuple(kind for kind, enabled in flags if enabled)


class CacheCountersConfig(BaseModel):
    """
    缓存计数器配置

    采用 sink + sink_options 的扩展模式，与采样配置组合在一起。

    配置示例:
        ```python
        # 默认内存接收端
        config = CacheCountersConfig()

        # StatsD 接收端，每 5 秒采样一次
        config = CacheCountersConfig(
            sink="statsd",
            sink_options={"host": "localhost", "port": 8125},
            sampling={"interval_millis": 5000},
        )

        sink = config.create_sink()
        ```

    属性:
        sink: 已注册的接收端名称（memory、prometheus、statsd）
        sink_options: 传递给接收端构造函数的参数字典
        category: 计数器类别名称
        sampling: 采样配置
    """

    sink: str = Field(
        default="memory",
        description="接收端名称，对应已注册的 sink 标识",
    )

    sink_options: dict[str, Any] = Field(
        default_factory=dict,
        description="接收端构造参数，会在实例化时传递给具体接收端实现",
    )

    category: str = Field(default=CATEGORY, min_length=1, description="计数器类别名称")

    sampling: SamplingConfig = Field(default_factory=SamplingConfig)

    # ========== Pydantic 配置 ==========

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",  # 禁止额外字段
        "str_strip_whitespace": True,
    }

    # ========== 验证器 ==========

    @model_validator(mode="after")
    def validate_sink(self) -> CacheCountersConfig:
        """验证接收端名称"""
        from .sinks import get_registered_sinks

        available_sinks = get_registered_sinks()
        if self.sink.lower() not in available_sinks:
            valid_sinks = ", ".join(available_sinks)
            msg = f"不支持的接收端类型: {self.sink}。支持的类型: {valid_sinks}"
            raise ValueError(msg)

        return self

    # ========== 接收端实例化 ==========

    def create_sink(self) -> BaseMetricSink:
        """
        根据配置创建接收端实例

        Returns:
            配置好的接收端实例

        Raises:
            CacheCountersConfigError: 接收端创建失败
        """
        from .sinks import create_sink

        try:
            return create_sink(self.sink, **self.sink_options)
        except Exception as e:
            msg = f"创建 {self.sink} 接收端失败: {e}"
            raise CacheCountersConfigError(msg) from e

    # ========== 工厂方法 ==========

    @classmethod
    def from_file(cls, file_path: str | Path) -> CacheCountersConfig:
        """
        从配置文件创建配置

        按扩展名选择解析器：.yaml/.yml、.toml、.json。文件顶层必须是映射，
        取值不合法时错误信息会列出出错字段，例如 sampling.interval_millis。

        Args:
            file_path: 配置文件路径

        Returns:
            CacheCountersConfig 实例

        Raises:
            CacheCountersConfigError: 文件不存在、格式不支持、解析失败或取值不合法
        """
        path = Path(file_path)
        if not path.is_file():
            msg = f"配置文件不存在: {path}"
            raise CacheCountersConfigError(msg)

        loader = _FILE_LOADERS.get(path.suffix.lower())
        if loader is None:
            supported = ", ".join(sorted(_FILE_LOADERS))
            msg = f"不支持的配置文件格式: {path.suffix or '(无扩展名)'}。支持的格式: {supported}"
            raise CacheCountersConfigError(msg)

        try:
            data = loader(path)
        except Exception as e:
            msg = f"解析配置文件失败: {path}: {e}"
            raise CacheCountersConfigError(msg) from e

        if not isinstance(data, dict):
            msg = f"配置文件顶层必须是映射，实际为 {type(data).__name__}: {path}"
            raise CacheCountersConfigError(msg)

        return cls._validate_source(data, f"配置文件 {path}")

    @classmethod
    def _validate_source(cls, data: dict[str, Any], source: str) -> CacheCountersConfig:
        """校验原始配置数据，把 Pydantic 错误转换为带字段路径的配置错误"""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            msg = f"{source} 不合法: {_describe_errors(e)}"
            raise CacheCountersConfigError(msg) from e

    @classmethod
    def from_env(cls, prefix: str = "CACHE_COUNTERS_") -> CacheCountersConfig:
        """
        从环境变量创建配置

        环境变量命名规则:
        - CACHE_COUNTERS_SINK=statsd
        - CACHE_COUNTERS_CATEGORY=CacheCounters
        - CACHE_COUNTERS_SAMPLE_COUNT=true
        - CACHE_COUNTERS_SAMPLE_SIZE=true
        - CACHE_COUNTERS_SAMPLE_MAX_SIZE=false
        - CACHE_COUNTERS_INTERVAL_MILLIS=5000
        - CACHE_COUNTERS_SINK_OPTIONS__HOST=localhost  (sink_options 使用双下划线)

        Args:
            prefix: 环境变量前缀

        Returns:
            CacheCountersConfig 实例

        Raises:
            CacheCountersConfigError: 环境变量取值不合法
        """
        data: dict[str, Any] = {"sink": os.environ.get(f"{prefix}SINK", "memory")}

        category = os.environ.get(f"{prefix}CATEGORY")
        if category:
            data["category"] = category

        sampling: dict[str, Any] = {}
        for field_name in SamplingConfig.model_fields:
            raw = os.environ.get(f"{prefix}{field_name.upper()}")
            if raw is not None:
                sampling[field_name] = cls._convert_env_value(raw)
        data["sampling"] = sampling

        # 收集 sink_options
        options: dict[str, Any] = {}
        options_prefix = f"{prefix}SINK_OPTIONS__"
        for key, value in os.environ.items():
            if key.startswith(options_prefix):
                option_key = key[len(options_prefix) :].lower()
                options[option_key] = cls._convert_env_value(value)
        data["sink_options"] = options

        return cls._validate_source(data, f"环境变量配置 ({prefix}*)")

    @staticmethod
    def _convert_env_value(value: str) -> Any:
        """转换环境变量值类型"""
        # 布尔值
        if value.lower() in {"true", "yes", "on"}:
            return True
        if value.lower() in {"false", "no", "off"}:
            return False

        # None/null
        if value.lower() in {"none", "null", ""}:
            return None

        # 数字
        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        # 字符串
        return value

    def __repr__(self) -> str:
        """字符串表示"""
        return (
            f"CacheCountersConfig(sink={self.sink!r}, category={self.category!r}, "
            f"sampling={self.sampling!r})"
        )


# ========== 配置文件解析 ==========


def _load_yaml(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _load_toml(path: Path) -> Any:
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # Python < 3.11

    with path.open("rb") as f:
        return tomllib.load(f)


def _load_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


_FILE_LOADERS: dict[str, Callable[[Path], Any]] = {
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
    ".toml": _load_toml,
    ".json": _load_json,
}


def _describe_errors(error: ValidationError) -> str:
    """
    把 Pydantic 校验错误压缩为一行

    每个错误格式为 "字段路径: 原因"，例如 "sampling.interval_millis: Input should be
    greater than 0"。模型级校验（如接收端名称）没有字段路径，显示为 "<root>"。
    """
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
