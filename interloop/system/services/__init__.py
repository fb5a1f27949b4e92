"""
系统服务：日志、配置
"""

from interloop.system.services.logger import (
    Layer,
    LoggerMixin,
    get_logger,
    setup_logging,
    trace_context,
)
from interloop.system.services.config_center import (
    EngineConfig,
    expand_env_vars,
    load_config,
    load_dotenv,
)

__all__ = [
    "Layer",
    "LoggerMixin",
    "get_logger",
    "setup_logging",
    "trace_context",
    "EngineConfig",
    "expand_env_vars",
    "load_config",
    "load_dotenv",
]
