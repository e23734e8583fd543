"""统一的对话数据模型。

本模块定义 Orchestrator 与 Provider 之间共享的标准数据结构：

- Part: 消息中的一个片段（文本 / 函数调用 / 函数响应，三选一）。
- Message: 一条对话消息（role + 有序的 parts）。
- Candidate / GenerateResult: 从 Provider 解析后的统一响应结果。

Provider 适配器（如 GeminiClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional


# 消息角色。system-prime 为会话开头的引导消息，发给 Gemini 时渲染为 model
Role = Literal["system-prime", "user", "model"]

WIRE_ROLES: Dict[str, str] = {
    "system-prime": "model",
    "user": "user",
    "model": "model",
}


@dataclass(frozen=True)
class FunctionCall:
    """模型发起的一次函数调用。"""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FunctionResponse:
    """回填给模型的函数调用结果。"""

    name: str
    result: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Part:
    """消息片段。

    正常情况下 text / function_call / function_response 三者只有一个有值。
    extra 保存模型返回的其他字段（如 thoughtSignature），回传时原样带上。
    三者都为空的 Part 视为“空片段”。
    """

    text: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    function_response: Optional[FunctionResponse] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def from_call(cls, name: str, args: Optional[Dict[str, Any]] = None) -> "Part":
        return cls(function_call=FunctionCall(name=name, args=dict(args or {})))

    @classmethod
    def from_response(cls, name: str, result: Dict[str, Any]) -> "Part":
        return cls(function_response=FunctionResponse(name=name, result=dict(result)))

    @property
    def has_text(self) -> bool:
        return bool(self.text)

    @property
    def is_empty(self) -> bool:
        return not self.has_text and self.function_call is None and self.function_response is None


@dataclass(frozen=True)
class Message:
    """一条对话消息，parts 的顺序有意义，必须原样保留。"""

    role: Role
    parts: tuple = ()

    @classmethod
    def text(cls, role: Role, text: str) -> "Message":
        return cls(role=role, parts=(Part.from_text(text),))

    def function_calls(self) -> List[FunctionCall]:
        return [p.function_call for p in self.parts if p.function_call is not None]


@dataclass
class Candidate:
    """单个候选回答（Orchestrator 只使用第一条）。"""

    content: Message
    finish_reason: Optional[str] = None


@dataclass
class GenerateResult:
    """一次 generateContent 调用的结果。

    - candidates: 零个或多个候选回答。
    """

    candidates: List[Candidate]
