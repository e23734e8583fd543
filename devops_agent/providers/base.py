"""Provider 抽象接口。

上层 ChatOrchestrator 不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 GeminiClient）。
- 负责：把会话历史与工具声明转成具体 API 请求，并把响应 JSON 解析为 GenerateResult。
"""

from typing import Protocol, Sequence

from devops_agent.domain.models import GenerateResult, Message
from devops_agent.tools.definitions import ToolDeclaration


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志。
    - generate(history, declarations): 执行一次非流式调用，返回统一的 GenerateResult。
      失败时抛出 TransportError / ApiError / ProtocolError。
    """

    name: str

    def generate(self, history: Sequence[Message], declarations: Sequence[ToolDeclaration]) -> GenerateResult:
        ...
