"""工具注册表。

启动时一次性构建“工具名 -> 工具”的只读表，并校验名称唯一。
dispatch 负责查找、确认与执行，并把所有结果（包括失败）转换为
模型可见的 function response payload：

- 未知工具：{"error": "Tool not found: <name>"}
- 操作员拒绝：{"result": "Tool execution cancelled by user."}
- 执行失败（包括工具内部的意外异常）：{"error": "Error executing tool <name>: <message>"}
- 成功：工具返回的结果原样透传
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from devops_agent.domain.exceptions import ConfigurationError, ToolError, ToolExecutionError, ToolNotFoundError
from devops_agent.infrastructure.logging.logger import logger
from .confirmation import AutoApprove, ConfirmationGate
from .definitions import Tool, ToolDeclaration

CANCELLED_PAYLOAD = {"result": "Tool execution cancelled by user."}


@dataclass
class ToolOutcome:
    """一次调度的结果。

    - payload: 写入 function response 的内容，总是有值。
    - error: 仅用于本地日志的错误；取消不算错误。
    - cancelled: 操作员是否拒绝了这次调用。
    """

    payload: Dict[str, Any]
    error: Optional[ToolError] = None
    cancelled: bool = False


class ToolRegistry:
    def __init__(self, tools: Iterable[Tool]):
        self._tools: Dict[str, Tool] = {}
        self._declarations: List[ToolDeclaration] = []
        for tool in tools:
            declaration = tool.declare()
            if declaration.name in self._tools:
                raise ConfigurationError(
                    code="DUPLICATE_TOOL",
                    message=f"tool {declaration.name!r} registered twice",
                )
            self._tools[declaration.name] = tool
            self._declarations.append(declaration)

    def declarations(self) -> List[ToolDeclaration]:
        return list(self._declarations)

    def names(self) -> List[str]:
        return [d.name for d in self._declarations]

    def dispatch(self, name: str, args: Dict[str, Any], gate: Optional[ConfirmationGate] = None) -> ToolOutcome:
        tool = self._tools.get(name)
        if tool is None:
            return ToolOutcome(payload={"error": f"Tool not found: {name}"}, error=ToolNotFoundError(name))

        if not (gate or AutoApprove()).confirm(name, args):
            logger.info("Tool execution cancelled by user", extra={"extra": {"tool": name}})
            return ToolOutcome(payload=dict(CANCELLED_PAYLOAD), cancelled=True)

        try:
            result = tool.execute(args)
        except ToolExecutionError as exc:
            if not exc.tool_name:
                exc.tool_name = name
            return ToolOutcome(
                payload={"error": f"Error executing tool {name}: {exc.message}"},
                error=exc,
            )
        except Exception as exc:
            logger.exception("Unexpected tool failure", extra={"extra": {"tool": name}})
            error = ToolExecutionError(str(exc) or type(exc).__name__, tool_name=name)
            return ToolOutcome(
                payload={"error": f"Error executing tool {name}: {error.message}"},
                error=error,
            )
        return ToolOutcome(payload=result)
