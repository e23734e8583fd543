"""内置命令行工具：bash、kubectl、helm、az。

每个工具在边界处把模型传来的 args 字典转换成带类型的参数对象，
再拼出一条 shell 命令交给 CommandRunner 执行。

command 参数按原样作为 shell 片段拼接（模型需要管道、重定向等能力），
可选参数的值会做 shell 转义。
"""

import shlex
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Tuple

from devops_agent.domain.exceptions import ToolExecutionError, ToolLaunchError
from devops_agent.infrastructure.logging.logger import logger
from .definitions import ToolDeclaration, ToolParam
from .executor import CommandRunner, ShellRunner


def _required_str(args: Dict[str, Any], key: str, tool_name: str) -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ToolExecutionError(f"missing or invalid '{key}' argument", tool_name=tool_name)
    return value


def _optional_str(args: Dict[str, Any], key: str) -> Optional[str]:
    value = args.get(key)
    if isinstance(value, str) and value:
        return value
    return None


@dataclass(frozen=True)
class BashParams:
    command: str


@dataclass(frozen=True)
class KubectlParams:
    command: str
    context: Optional[str] = None
    namespace: Optional[str] = None
    output: Optional[str] = None


@dataclass(frozen=True)
class HelmParams:
    command: str
    kubecontext: Optional[str] = None
    namespace: Optional[str] = None
    output: Optional[str] = None


@dataclass(frozen=True)
class AzParams:
    command: str
    subscription: Optional[str] = None
    resource_group: Optional[str] = None
    output: Optional[str] = None


class CommandTool:
    """命令行工具基类。

    子类提供：
    - declaration: 暴露给模型的静态声明。
    - params_type: 带类型的参数 dataclass，第一个字段必须是 command。
    - binary: 命令前缀；为空时 command 即完整命令（bash）。
    - flags: 可选参数字段 -> 命令行 flag 的映射，按顺序拼接。
    """

    declaration: ToolDeclaration
    params_type: type = BashParams
    binary: str = ""
    flags: Tuple[Tuple[str, str], ...] = ()

    def __init__(self, runner: Optional[CommandRunner] = None):
        self._runner = runner or ShellRunner()

    @property
    def name(self) -> str:
        return self.declaration.name

    def declare(self) -> ToolDeclaration:
        return self.declaration

    def parse(self, args: Dict[str, Any]):
        values: Dict[str, Any] = {"command": _required_str(args, "command", self.name)}
        for f in fields(self.params_type):
            if f.name != "command":
                values[f.name] = _optional_str(args, f.name)
        return self.params_type(**values)

    def build_command(self, params) -> str:
        if not self.binary:
            return params.command
        parts: List[str] = [self.binary]
        for field_name, flag in self.flags:
            value = getattr(params, field_name)
            if value:
                parts.append(f"{flag}={shlex.quote(value)}")
        parts.append(params.command)
        return " ".join(parts)

    def execute(self, args: Dict[str, Any]) -> Dict[str, Any]:
        params = self.parse(args)
        command_line = self.build_command(params)
        logger.debug("Running tool command", extra={"extra": {"tool": self.name, "command": command_line}})
        try:
            result = self._runner.run(command_line)
        except ToolLaunchError as exc:
            label = f"{self.binary} command" if self.binary else "command"
            raise ToolLaunchError(f"failed to execute {label}: {exc.message}", tool_name=self.name) from exc
        return result.to_payload()


class BashTool(CommandTool):
    declaration = ToolDeclaration(
        name="bash",
        description="Execute a bash command and return the result",
        params={
            "command": ToolParam(
                name="command",
                type="string",
                description="The bash command to execute",
                required=True,
            ),
        },
    )
    params_type = BashParams


class KubectlTool(CommandTool):
    declaration = ToolDeclaration(
        name="kubectl",
        description="Execute a kubectl command and return the result",
        params={
            "command": ToolParam(
                name="command",
                type="string",
                description="The kubectl command to execute (without the 'kubectl' prefix)",
                required=True,
            ),
            "context": ToolParam(
                name="context",
                type="string",
                description="The Kubernetes context to use (optional)",
            ),
            "namespace": ToolParam(
                name="namespace",
                type="string",
                description="The Kubernetes namespace to use (optional)",
            ),
            "output": ToolParam(
                name="output",
                type="string",
                description="The output format (e.g., json, yaml, wide) (optional)",
            ),
        },
    )
    params_type = KubectlParams
    binary = "kubectl"
    flags = (("context", "--context"), ("namespace", "--namespace"), ("output", "--output"))


class HelmTool(CommandTool):
    declaration = ToolDeclaration(
        name="helm",
        description="Execute a helm command and return the result",
        params={
            "command": ToolParam(
                name="command",
                type="string",
                description="The helm command to execute (without the 'helm' prefix)",
                required=True,
            ),
            "kubecontext": ToolParam(
                name="kubecontext",
                type="string",
                description="The Kubernetes context to use for Helm (optional)",
            ),
            "namespace": ToolParam(
                name="namespace",
                type="string",
                description="The Kubernetes namespace to use for Helm (optional)",
            ),
            "output": ToolParam(
                name="output",
                type="string",
                description="The output format (e.g., json, yaml, table) (optional)",
            ),
        },
    )
    params_type = HelmParams
    binary = "helm"
    # helm 的 --output 只对部分子命令有效，不支持时由 helm 自己报错
    flags = (("kubecontext", "--kube-context"), ("namespace", "--namespace"), ("output", "--output"))


class AzTool(CommandTool):
    declaration = ToolDeclaration(
        name="az",
        description="Execute an Azure CLI command and return the result",
        params={
            "command": ToolParam(
                name="command",
                type="string",
                description="The Azure CLI command to execute (without the 'az' prefix)",
                required=True,
            ),
            "subscription": ToolParam(
                name="subscription",
                type="string",
                description="The Azure subscription ID or name to use (optional)",
            ),
            "resource_group": ToolParam(
                name="resource_group",
                type="string",
                description="The Azure resource group to use (optional)",
            ),
            "output": ToolParam(
                name="output",
                type="string",
                description="The output format (e.g., json, yaml, table, tsv) (optional)",
            ),
        },
    )
    params_type = AzParams
    binary = "az"
    flags = (("subscription", "--subscription"), ("resource_group", "--resource-group"), ("output", "--output"))


def default_tools(runner: Optional[CommandRunner] = None) -> List[CommandTool]:
    """内置工具列表，顺序即暴露给模型的声明顺序。"""

    shared = runner or ShellRunner()
    return [BashTool(shared), KubectlTool(shared), HelmTool(shared), AzTool(shared)]
