"""DevOps Agent 顶层包。

该包提供面向基础设施运维人员的对话式助手，
包括配置加载、领域模型、Gemini 适配、命令行工具、
人工确认与对话编排循环等能力。
"""

from devops_agent.agents.orchestrator import ChatOrchestrator, OrchestratorConfig, TurnOutcome, TurnState
from devops_agent.api.service import build_orchestrator

__all__ = ["ChatOrchestrator", "OrchestratorConfig", "TurnOutcome", "TurnState", "build_orchestrator"]
