"""Chat Orchestrator 核心模块。

驱动“请求模型 -> 解析候选 -> 分发工具调用 -> 再次请求”的循环，直到本轮输入落定。

状态流转::

    AWAITING_INPUT -> REQUESTING -> TEXT_SETTLED -> AWAITING_INPUT
                                 -> CALLS_PENDING -> DISPATCHING -> REQUESTING
                                 -> ERROR_TERMINAL

约束：
- 同一轮中的所有 part 按顺序处理完之后才会发出下一次请求。
- 每个写入历史的 FunctionCall，在下一次请求前都有且只有一个同名的 FunctionResponse。
- 模型调用失败直接抛给调用方，历史保留到失败前的状态，不做内部重试
  （是否重试由注入的 RetryPolicy 决定）。
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence
from uuid import uuid4

from devops_agent.domain.conversation import ConversationHistory
from devops_agent.domain.exceptions import ToolError
from devops_agent.domain.models import FunctionCall, Message, Part
from devops_agent.infrastructure.logging.logger import logger
from devops_agent.prompts import load_system_prompt
from devops_agent.providers.base import ProviderClient
from devops_agent.providers.retry import NoRetry, RetryPolicy
from devops_agent.tools.confirmation import AutoApprove, ConfirmationGate, ConsoleConfirmation
from devops_agent.tools.definitions import ToolInvocation
from devops_agent.tools.registry import ToolRegistry


UNEXPECTED_RESPONSE_TEXT = "I received an unexpected response. Let's try again."

FINISH_STOP = "STOP"
# 非 STOP 的结束原因：直接结束本轮，不视为错误
FINISH_WARNINGS: Dict[str, str] = {
    "MAX_TOKENS": "Response truncated due to MAX_TOKENS limit",
    "SAFETY": "Response stopped due to safety concerns",
    "RECITATION": "Response stopped due to recitation concerns",
    "OTHER": "Response stopped for other reasons",
}


class TurnState(str, Enum):
    AWAITING_INPUT = "awaiting_input"
    REQUESTING = "requesting"
    TEXT_SETTLED = "text_settled"
    CALLS_PENDING = "calls_pending"
    DISPATCHING = "dispatching"
    ERROR_TERMINAL = "error_terminal"


class Display(Protocol):
    def emit(self, text: str) -> None:
        ...


@dataclass
class OrchestratorConfig:
    safe_mode: bool = True  # 会话期间固定，不会中途修改
    provider: str = "gemini"
    model: str = ""


@dataclass
class TurnOutcome:
    """一次 handle_user_turn 的结果。

    - state: 本轮结束时的状态（正常结束为 TEXT_SETTLED）。
    - finish_reason: 最后一个模型回合的结束原因。
    - requests: 本轮向模型发出的请求次数。
    - tool_errors: 工具调度错误，已经以 payload 形式写入历史，这里仅供本地日志。
    """

    state: TurnState
    finish_reason: Optional[str] = None
    requests: int = 0
    tool_errors: List[ToolError] = field(default_factory=list)


class ChatOrchestrator:
    def __init__(
        self,
        provider_client: ProviderClient,
        registry: ToolRegistry,
        display: Display,
        confirmation: Optional[ConfirmationGate] = None,
        config: Optional[OrchestratorConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        system_prompt: Optional[str] = None,
    ):
        self._provider_client = provider_client
        self._registry = registry
        self._display = display
        self._config = config or OrchestratorConfig(provider=provider_client.name)
        if self._config.safe_mode:
            self._gate: ConfirmationGate = confirmation or ConsoleConfirmation()
        else:
            self._gate = AutoApprove()
        self._retry_policy = retry_policy or NoRetry()
        self._history = ConversationHistory(system_prompt if system_prompt is not None else load_system_prompt())
        self.state = TurnState.AWAITING_INPUT

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def safe_mode(self) -> bool:
        return self._config.safe_mode

    def handle_user_turn(self, text: str) -> TurnOutcome:
        """处理一次用户输入，直到模型给出最终文本或本轮无法继续。

        Raises:
            TransportError / ApiError / ProtocolError: 模型调用失败，本轮中止。
        """

        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "provider": self._config.provider,
            "model": self._config.model,
        }
        self._history.append(Message.text("user", text))
        outcome = TurnOutcome(state=TurnState.REQUESTING)
        try:
            outcome.state = self._run_loop(outcome, log_ctx)
        except Exception as exc:
            self.state = TurnState.ERROR_TERMINAL
            self._log(
                logging.ERROR,
                "Turn aborted",
                log_ctx,
                error=str(exc),
                error_type=type(exc).__name__,
                requests=outcome.requests,
            )
            raise
        self.state = TurnState.AWAITING_INPUT
        self._log(
            logging.INFO,
            "Completed turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            requests=outcome.requests,
            finish_reason=outcome.finish_reason,
            tool_errors=len(outcome.tool_errors),
            history_length=len(self._history),
        )
        return outcome

    def _run_loop(self, outcome: TurnOutcome, log_ctx: Dict[str, Any]) -> TurnState:
        declarations = self._registry.declarations()
        while True:
            self.state = TurnState.REQUESTING
            self._log(
                logging.INFO,
                "Calling provider",
                log_ctx,
                round=outcome.requests + 1,
                message_count=len(self._history),
            )
            result = self._retry_policy.call(
                lambda: self._provider_client.generate(self._history.messages, declarations)
            )
            outcome.requests += 1

            if not result.candidates:
                self._log(logging.INFO, "Model returned no candidates", log_ctx)
                return TurnState.TEXT_SETTLED

            candidate = result.candidates[0]
            outcome.finish_reason = candidate.finish_reason
            parts = candidate.content.parts
            if not parts:
                self._log(logging.INFO, "Model turn has no parts", log_ctx)
                return TurnState.TEXT_SETTLED

            self._history.append(Message(role="model", parts=parts))

            if not any(p.has_text or p.function_call is not None for p in parts):
                self._log(logging.INFO, "AI response part was empty (no text or function call)", log_ctx)
                self._history.append(Message.text("model", UNEXPECTED_RESPONSE_TEXT))
                return TurnState.TEXT_SETTLED

            had_calls = self._process_parts(parts, outcome, log_ctx)

            if candidate.finish_reason == FINISH_STOP:
                if had_calls:
                    continue
                return TurnState.TEXT_SETTLED
            self._log(
                logging.WARNING,
                FINISH_WARNINGS.get(candidate.finish_reason or "", "No finish reason or unrecognized one"),
                log_ctx,
                finish_reason=candidate.finish_reason,
            )
            return TurnState.TEXT_SETTLED

    def _process_parts(self, parts: Sequence[Part], outcome: TurnOutcome, log_ctx: Dict[str, Any]) -> bool:
        """按顺序处理一个模型回合的所有 part，返回本回合是否包含函数调用。"""

        pending: List[FunctionCall] = [p.function_call for p in parts if p.function_call is not None]
        if pending:
            self.state = TurnState.CALLS_PENDING
        answered = 0
        try:
            for part in parts:
                if part.has_text:
                    self._display.emit(part.text)
                if part.function_call is not None:
                    self.state = TurnState.DISPATCHING
                    self._dispatch(part.function_call, outcome, log_ctx)
                    answered += 1
                elif not part.has_text:
                    self._log(logging.INFO, "Skipping empty response part", log_ctx)
        except BaseException as exc:
            # 保证不会留下没有响应的函数调用
            for call in pending[answered:]:
                self._append_response(call.name, {"error": f"Tool call aborted: {type(exc).__name__}"})
            raise
        return bool(pending)

    def _dispatch(self, call: FunctionCall, outcome: TurnOutcome, log_ctx: Dict[str, Any]) -> None:
        invocation = ToolInvocation(name=call.name, args=dict(call.args))
        self._log(
            logging.INFO,
            "AI wants to call function",
            log_ctx,
            tool_name=invocation.name,
            tool_args=invocation.args,
        )
        result = self._registry.dispatch(invocation.name, invocation.args, self._gate)
        if result.error is not None:
            outcome.tool_errors.append(result.error)
            self._log(
                logging.ERROR,
                "Tool dispatch failed",
                log_ctx,
                tool_name=invocation.name,
                error_code=result.error.code,
                error=result.error.message,
            )
        else:
            self._log(
                logging.INFO,
                "Tool call finished",
                log_ctx,
                tool_name=invocation.name,
                cancelled=result.cancelled,
                result_preview=str(result.payload)[:200],
            )
        self._append_response(invocation.name, result.payload)

    def _append_response(self, name: str, payload: Dict[str, Any]) -> None:
        self._history.append(Message(role="user", parts=(Part.from_response(name, payload),)))

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
