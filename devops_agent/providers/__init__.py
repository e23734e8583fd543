"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 默认配置 (registry)。
- 提供具体实现 (gemini_client) 与模型调用的重试策略 (retry)。
"""

from typing import Optional

from devops_agent.config.settings import settings
from devops_agent.domain.exceptions import ConfigurationError
from devops_agent.providers.base import ProviderClient
from devops_agent.providers.gemini_client import GeminiClient


def create_provider(cfg=None, name: Optional[str] = None) -> ProviderClient:
    """根据配置创建 Provider 实例。

    API key 缺失或 Provider 不受支持时抛出 ConfigurationError，
    该错误在启动阶段直接终止，不做恢复。
    """

    cfg = cfg or settings
    if not getattr(cfg, "gemini_api_key", None):
        raise ConfigurationError(code="MISSING_API_KEY", message="APIKey is required in LLM configuration")
    provider_name = (name or getattr(cfg, "provider", "gemini") or "gemini").lower()
    if provider_name == "gemini":
        return GeminiClient(cfg)
    raise ConfigurationError(code="UNSUPPORTED_PROVIDER", message=f"unsupported LLM provider: {provider_name}")
