"""会话装配模块。

根据配置组装一个可用的 ChatOrchestrator，供 CLI 或其他上层应用调用。
"""

from typing import Optional

from devops_agent.agents.orchestrator import ChatOrchestrator, Display, OrchestratorConfig
from devops_agent.config.settings import Settings, settings as default_settings
from devops_agent.infrastructure.terminal.renderer import MarkdownRenderer
from devops_agent.providers import create_provider
from devops_agent.providers.retry import build_retry_policy
from devops_agent.tools.cli_tools import default_tools
from devops_agent.tools.confirmation import ConfirmationGate
from devops_agent.tools.executor import CommandRunner
from devops_agent.tools.registry import ToolRegistry


def build_orchestrator(
    cfg: Optional[Settings] = None,
    *,
    display: Optional[Display] = None,
    confirmation: Optional[ConfirmationGate] = None,
    runner: Optional[CommandRunner] = None,
    system_prompt: Optional[str] = None,
) -> ChatOrchestrator:
    """按配置创建一个新的会话。

    Args:
        cfg: 会话配置，默认使用模块级 settings。
        display: 文本输出协作者，默认渲染 Markdown 到终端。
        confirmation: safe 模式下的确认方式，默认从终端读取。
        runner: 工具的命令执行器，默认使用 bash 子进程。
        system_prompt: 覆盖默认的系统提示词。

    Raises:
        ConfigurationError: API key 缺失或 Provider 不受支持。
    """

    cfg = cfg or default_settings
    provider_client = create_provider(cfg)
    registry = ToolRegistry(default_tools(runner))
    return ChatOrchestrator(
        provider_client=provider_client,
        registry=registry,
        display=display or MarkdownRenderer(),
        confirmation=confirmation,
        config=OrchestratorConfig(
            safe_mode=not cfg.unsafe_mode,
            provider=provider_client.name,
            model=cfg.model,
        ),
        retry_policy=build_retry_policy(cfg.retry_attempts),
        system_prompt=system_prompt,
    )
