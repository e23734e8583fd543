"""配置管理模块。

支持从 config.yaml、环境变量以及 .env 加载配置。

优先级：配置文件 > 环境变量 > .env。配置文件既可以使用扁平字段，
也可以使用嵌套写法::

    llm:
      provider: gemini
      apiKey: YOUR_API_KEY_HERE
      model: gemini-1.5-pro
    unsafeMode: false

apiKey 为空或仍是占位符时，回退到 GEMINI_API_KEY 环境变量。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


API_KEY_PLACEHOLDER = "YOUR_API_KEY_HERE"

# 嵌套 llm 段中的 camelCase 字段 -> Settings 字段
_LLM_KEYS = {
    "provider": "provider",
    "apiKey": "gemini_api_key",
    "api_key": "gemini_api_key",
    "model": "model",
    "endpoint": "endpoint",
}
_TOP_LEVEL_ALIASES = {
    "unsafeMode": "unsafe_mode",
}


class Settings(BaseSettings):
    """会话配置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    provider: str = Field(default="gemini", description="LLM Provider 名称，目前仅支持 gemini")
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    model: str = Field(default="gemini-1.5-pro", description="模型 ID")
    endpoint: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API 基础URL",
    )
    http_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="HTTP 超时时间（秒），为空表示不设超时",
    )
    max_output_tokens: Optional[int] = Field(default=None, ge=1, description="可选的输出 token 上限")
    top_k: Optional[int] = Field(default=None, ge=1, description="可选的 top-k 采样")
    top_p: Optional[float] = Field(default=None, gt=0, le=1, description="可选的 top-p 采样")
    retry_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="模型调用的最大尝试次数，1 表示不重试",
    )

    # ---- 会话 ----
    unsafe_mode: bool = Field(default=False, description="是否跳过工具执行前的确认")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("gemini_api_key")
    @classmethod
    def drop_placeholder(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip() or v.strip() == API_KEY_PLACEHOLDER:
            return None
        return v.strip()


def _normalize_file_config(data: Dict[str, Any]) -> Dict[str, Any]:
    """把配置文件内容展开为 Settings 字段，丢弃空值与占位符。"""

    flat: Dict[str, Any] = {}
    for key, value in data.items():
        if key == "llm" and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                target = _LLM_KEYS.get(sub_key)
                if target:
                    flat[target] = sub_value
                else:
                    warnings.warn(f"Unknown llm config key {sub_key!r} ignored")
            continue
        flat[_TOP_LEVEL_ALIASES.get(key, key)] = value
    key = flat.get("gemini_api_key")
    if key in (None, "", API_KEY_PLACEHOLDER):
        flat.pop("gemini_api_key", None)
    return {k: v for k, v in flat.items() if v is not None}


def _config_candidates(path: Optional[Union[str, Path]]) -> list:
    if path:
        return [Path(path).expanduser()]
    candidates = []
    explicit = os.getenv("AGENT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.append(Path.cwd() / "config.yaml")
    return candidates


def load_config_file(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。

    显式传入的 path 不存在或格式错误时抛出异常；
    自动搜索到的文件读取失败只给出警告。
    """

    for candidate in _config_candidates(path):
        if not candidate.exists():
            if path:
                raise FileNotFoundError(f"config file {candidate} not found")
            continue
        try:
            data = yaml.safe_load(candidate.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            if path:
                raise
            warnings.warn(f"Failed to read config file {candidate}: {exc}")
            continue
        if not isinstance(data, dict):
            if path:
                raise ValueError(f"config file {candidate} is not a mapping")
            warnings.warn(f"Config file {candidate} is not a mapping, ignored")
            continue
        return _normalize_file_config(data)
    return {}


def load_settings(path: Optional[Union[str, Path]] = None, **overrides: Any) -> Settings:
    """加载配置：配置文件的值作为 init 参数，优先于环境变量。"""

    values = load_config_file(path)
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)


def load_default_settings() -> Settings:
    """导入时使用的默认配置，自动搜索到的配置文件无效时只给出警告。

    CLI 会用 load_settings 重新加载并报告错误，这里不能让导入失败。
    """

    try:
        return load_settings()
    except (OSError, ValueError) as exc:
        warnings.warn(f"Invalid configuration ignored, using defaults: {exc}")
    try:
        return Settings()
    except ValueError as exc:
        warnings.warn(f"Invalid environment configuration ignored: {exc}")
        return Settings.model_construct()


settings = load_default_settings()
