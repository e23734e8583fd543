"""工具数据结构定义。

这些 dataclass 描述了“工具调用”的 schema，既用于：
- 将可用工具列表暴露给 LLM（ToolDeclaration / ToolParam）。
- 在 Orchestrator 中表示模型触发的一次调用（ToolInvocation）。

Tool 协议是每个具体工具必须满足的契约：declare() 返回静态声明，
execute(args) 返回结果字典，失败时抛出 ToolExecutionError。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Protocol


@dataclass(frozen=True)
class ToolParam:
    """单个工具参数的定义。"""

    name: str
    type: str
    description: str
    required: bool = False


@dataclass(frozen=True)
class ToolDeclaration:
    """一个可供 LLM 调用的工具定义，启动时加载一次。"""

    name: str
    description: str
    params: Dict[str, ToolParam] = field(default_factory=dict)

    @property
    def required(self):
        return sorted(name for name, p in self.params.items() if p.required)


@dataclass(frozen=True)
class ToolInvocation:
    """从 FunctionCall 中提取的一次调用，每次出现只消费一次。"""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)


class Tool(Protocol):
    """工具能力契约。"""

    def declare(self) -> ToolDeclaration:
        ...

    def execute(self, args: Dict[str, Any]) -> Dict[str, Any]:
        ...
