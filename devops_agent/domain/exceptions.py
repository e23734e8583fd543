"""统一错误模型。

所有跨模块抛出的错误都继承自 AgentError，便于 CLI 层统一捕获与提示。

分为三类：
- 配置错误（ConfigurationError）：构造阶段即失败，不做恢复。
- 模型调用错误（TransportError / ApiError / ProtocolError）：中止当前轮次，
  交给调用方处理，内部不重试。
- 工具调度错误（ToolNotFoundError / ToolExecutionError）：转换为模型可见的
  function response，同时返回给调用方用于本地日志。
"""

from typing import Optional


class AgentError(Exception):
    """错误基类。

    Attributes:
        code: 机器可读错误码（如 "API_ERROR"）。
        message: 用户可读错误信息。
        extra: 其他补充字段（例如 tool、provider 等）。
    """

    def __init__(self, code: str, message: str, **extra):
        self.code = code
        self.message = message
        self.extra = extra
        super().__init__(message)


class ConfigurationError(AgentError):
    """Provider 配置缺失或不受支持。"""


class TransportError(AgentError):
    """网络层错误，例如 DNS 失败、连接中断。"""


class ApiError(AgentError):
    """模型 API 返回非 2xx 状态码。"""

    def __init__(self, status: int, body: str, code: str = "API_ERROR", message: Optional[str] = None):
        self.status = status
        self.body = body
        super().__init__(
            code=code,
            message=message or f"API returned status {status}: {body}",
            status=status,
        )


class RateLimitError(ApiError):
    """429 限流，由上层 RetryPolicy 决定是否重试。"""

    def __init__(self, body: str):
        super().__init__(status=429, body=body, code="RATE_LIMIT")


class ProtocolError(AgentError):
    """响应体无法解析为预期结构。"""


class ToolError(AgentError):
    """工具调度相关错误的基类。"""

    def __init__(self, code: str, message: str, tool_name: str = "", **extra):
        self.tool_name = tool_name
        super().__init__(code=code, message=message, tool_name=tool_name, **extra)


class ToolNotFoundError(ToolError):
    """模型请求了未注册的工具。"""

    def __init__(self, tool_name: str):
        super().__init__(code="TOOL_NOT_FOUND", message=f"tool {tool_name} not found", tool_name=tool_name)


class ToolExecutionError(ToolError):
    """工具执行失败（参数非法、命令无法执行等）。"""

    def __init__(self, message: str, tool_name: str = "", code: str = "TOOL_EXECUTION_ERROR"):
        super().__init__(code=code, message=message, tool_name=tool_name)


class ToolLaunchError(ToolExecutionError):
    """子进程无法启动（可执行文件不存在、shell 无法启动）。

    与“命令以非零退出码结束”不同，后者属于正常结果。
    """

    def __init__(self, message: str, tool_name: str = ""):
        super().__init__(message=message, tool_name=tool_name, code="TOOL_LAUNCH_ERROR")
