"""
配置中心

引擎配置（默认模型、最大迭代次数）的加载：
环境变量 > 配置文件 > 默认值。

加载结果是不可变的 EngineConfig，在创建 Agent Loop / 会话时传入，
不使用进程级可变单例。
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from interloop.system.services.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SETTINGS_PATH = "./settings.json"

ENV_SETTINGS_PATH = "AGENT_SETTINGS_PATH"
ENV_DEFAULT_MODEL = "AGENT_DEFAULT_MODEL"
ENV_MAX_ITERATIONS = "AGENT_MAX_ITERATIONS"


def load_dotenv(env_path: Optional[Path] = None) -> bool:
    """
    加载 .env 文件中的环境变量（不覆盖已有值）

    Args:
        env_path: .env 文件路径，默认从当前目录向上查找

    Returns:
        是否成功加载
    """
    if env_path is None:
        current = Path.cwd()
        env_path = current / ".env"
        if not env_path.exists():
            for parent in current.parents:
                candidate = parent / ".env"
                if candidate.exists():
                    env_path = candidate
                    break

    if not env_path.exists():
        logger.debug(f".env文件不存在: {env_path}")
        return False

    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                    value = value[1:-1]

                if key and key not in os.environ:
                    os.environ[key] = value
    except OSError as e:
        logger.warning(f"加载.env文件失败: {e}")
        return False

    logger.debug(f"已加载环境变量文件: {env_path}")
    return True


def expand_env_vars(value: Any) -> Any:
    """
    展开 ${VAR_NAME} / $VAR_NAME 形式的环境变量引用

    未定义的变量保持原样。字典和列表递归处理。
    """
    if isinstance(value, str):
        pattern = r'\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)'

        def replace(match):
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


class EngineConfig(BaseModel):
    """
    引擎配置（不可变）

    配置文件里既可以写 default_model / max_iterations，
    也可以写 defaultModel / maxIterations。
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    default_model: str = Field(default="gemini-3-flash-preview", alias="defaultModel")
    max_iterations: int = Field(default=100, gt=0, alias="maxIterations")


def _read_settings_file(path: Path) -> Dict[str, Any]:
    """读取配置文件，读取或解析失败时记录日志并返回空字典"""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"解析配置文件失败 {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"配置文件顶层不是对象，已忽略: {path}")
        return {}

    return expand_env_vars(data)


def _read_env(env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}

    model = env.get(ENV_DEFAULT_MODEL)
    if model:
        overrides["default_model"] = model

    raw_iterations = env.get(ENV_MAX_ITERATIONS)
    if raw_iterations:
        try:
            overrides["max_iterations"] = int(raw_iterations.strip())
        except ValueError:
            logger.warning(f"{ENV_MAX_ITERATIONS} 不是整数，已忽略: {raw_iterations!r}")

    return overrides


def load_config(
    settings_path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> EngineConfig:
    """
    加载引擎配置

    流程:
    1. 确定配置文件路径（参数 > AGENT_SETTINGS_PATH > ./settings.json）
    2. 读取配置文件（JSON 或 YAML），展开环境变量引用
    3. 用环境变量覆盖
    4. 校验并生成 EngineConfig

    Args:
        settings_path: 配置文件路径
        env: 环境变量映射，默认 os.environ（此时先加载 .env）

    Returns:
        EngineConfig 实例

    Raises:
        pydantic.ValidationError: 配置值非法（如 max_iterations <= 0）
    """
    if env is None:
        load_dotenv()
        env = os.environ
    path = Path(settings_path or env.get(ENV_SETTINGS_PATH) or DEFAULT_SETTINGS_PATH)

    file_config = _read_settings_file(path)
    # 文件里的驼峰键先归一化，保证环境变量能覆盖
    merged: Dict[str, Any] = {}
    for name, field_info in EngineConfig.model_fields.items():
        if name in file_config:
            merged[name] = file_config[name]
        elif field_info.alias and field_info.alias in file_config:
            merged[name] = file_config[field_info.alias]
    merged.update(_read_env(env))

    config = EngineConfig.model_validate(merged)
    logger.debug(f"引擎配置: model={config.default_model}, max_iterations={config.max_iterations}")
    return config
