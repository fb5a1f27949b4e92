"""
日志服务

为引擎各组件提供统一日志：
- trace_id 追踪（一次 Agent Loop 运行对应一个 trace_id）
- 层级 / 组件标识
- LoggerMixin 提供 self.logger
"""

import contextvars
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, Optional

PACKAGE_LOGGER = "interloop"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(trace_id)s | %(layer)s | %(component)s | %(message)s"
LOG_FORMAT_SIMPLE = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_initialized = False

_trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("trace_id", default="-")
_layer_var: contextvars.ContextVar[str] = contextvars.ContextVar("layer", default="-")
_component_var: contextvars.ContextVar[str] = contextvars.ContextVar("component", default="-")


class Layer:
    """引擎层级常量"""
    SESSION = "Session"
    LOOP = "Loop"
    MODEL = "Model"
    TOOL = "Tool"
    HOOK = "Hook"
    SYSTEM = "System"


@dataclass
class LogContext:
    """日志上下文"""
    trace_id: str = "-"
    layer: str = "-"
    component: str = "-"

    def to_dict(self) -> Dict[str, str]:
        return {
            "trace_id": self.trace_id,
            "layer": self.layer,
            "component": self.component,
        }


class TraceIdFilter(logging.Filter):
    """把 trace_id / layer / component 写入日志记录"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _trace_id_var.get()
        record.layer = _layer_var.get()
        record.component = _component_var.get()
        return True


def set_trace_context(
    trace_id: Optional[str] = None,
    layer: Optional[str] = None,
    component: Optional[str] = None,
) -> None:
    """
    设置当前上下文的追踪信息

    Args:
        trace_id: 追踪ID
        layer: 层级名称
        component: 组件名称
    """
    if trace_id is not None:
        _trace_id_var.set(trace_id)
    if layer is not None:
        _layer_var.set(layer)
    if component is not None:
        _component_var.set(component)


def get_trace_context() -> LogContext:
    """获取当前上下文的追踪信息"""
    return LogContext(
        trace_id=_trace_id_var.get(),
        layer=_layer_var.get(),
        component=_component_var.get(),
    )


class TraceContextManager:
    """追踪上下文管理器，退出时恢复进入前的值"""

    def __init__(
        self,
        trace_id: Optional[str] = None,
        layer: Optional[str] = None,
        component: Optional[str] = None,
    ):
        self.trace_id = trace_id
        self.layer = layer
        self.component = component
        self._tokens: list = []

    def __enter__(self) -> "TraceContextManager":
        if self.trace_id is not None:
            self._tokens.append((_trace_id_var, _trace_id_var.set(self.trace_id)))
        if self.layer is not None:
            self._tokens.append((_layer_var, _layer_var.set(self.layer)))
        if self.component is not None:
            self._tokens.append((_component_var, _component_var.set(self.component)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def trace_context(
    trace_id: Optional[str] = None,
    layer: Optional[str] = None,
    component: Optional[str] = None,
) -> TraceContextManager:
    """
    创建追踪上下文管理器

    用法:
        with trace_context(trace_id=run_id, layer=Layer.LOOP):
            logger.info("运行中...")
    """
    return TraceContextManager(trace_id, layer, component)


def setup_logging(
    level: Optional[int] = None,
    use_enhanced_format: bool = True,
) -> None:
    """
    初始化 interloop 包日志器

    只配置包级日志器，不改动根日志器。日志写到 stderr，
    stdout 留给流式输出。

    Args:
        level: 日志级别，默认读取 AGENT_LOG_LEVEL（缺省 WARNING）
        use_enhanced_format: 是否使用增强格式（包含trace_id、层级等）
    """
    global _initialized

    if _initialized:
        return

    if level is None:
        level_name = os.environ.get("AGENT_LOG_LEVEL", "WARNING").upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.WARNING

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    log_format = LOG_FORMAT if use_enhanced_format else LOG_FORMAT_SIMPLE
    handler.setFormatter(logging.Formatter(log_format, DATE_FORMAT))
    if use_enhanced_format:
        handler.addFilter(TraceIdFilter())

    package_logger.addHandler(handler)
    _initialized = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    获取日志器

    Args:
        name: 日志器名称，通常使用 __name__

    Returns:
        Logger 实例
    """
    if not _initialized:
        setup_logging()

    return logging.getLogger(name or PACKAGE_LOGGER)


class LoggerMixin:
    """
    日志器混入类，为类提供 self.logger 属性

    日志器名称为 "<模块>.<类名>"，挂在 interloop 包日志器下。
    """

    _log_layer: str = "-"

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, "_logger"):
            cls = self.__class__
            self._logger = get_logger(f"{cls.__module__}.{cls.__name__}")
        return self._logger

    def log_info(self, message: str, trace_id: Optional[str] = None) -> None:
        """带上下文的INFO日志"""
        with trace_context(trace_id=trace_id, layer=self._log_layer, component=self.__class__.__name__):
            self.logger.info(message)

    def log_debug(self, message: str, trace_id: Optional[str] = None) -> None:
        """带上下文的DEBUG日志"""
        with trace_context(trace_id=trace_id, layer=self._log_layer, component=self.__class__.__name__):
            self.logger.debug(message)

    def log_warning(self, message: str, trace_id: Optional[str] = None) -> None:
        """带上下文的WARNING日志"""
        with trace_context(trace_id=trace_id, layer=self._log_layer, component=self.__class__.__name__):
            self.logger.warning(message)

    def log_error(self, message: str, trace_id: Optional[str] = None) -> None:
        """带上下文的ERROR日志"""
        with trace_context(trace_id=trace_id, layer=self._log_layer, component=self.__class__.__name__):
            self.logger.error(message)


class SessionLoggerMixin(LoggerMixin):
    """会话层日志混入"""
    _log_layer = Layer.SESSION


class LoopLoggerMixin(LoggerMixin):
    """循环层日志混入"""
    _log_layer = Layer.LOOP


class ModelLoggerMixin(LoggerMixin):
    """模型层日志混入"""
    _log_layer = Layer.MODEL


class ToolLoggerMixin(LoggerMixin):
    """工具层日志混入"""
    _log_layer = Layer.TOOL


class HookLoggerMixin(LoggerMixin):
    """钩子层日志混入"""
    _log_layer = Layer.HOOK
