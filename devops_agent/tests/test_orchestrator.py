import json
from collections import Counter

import pytest
import tenacity

from devops_agent.agents.orchestrator import (
    UNEXPECTED_RESPONSE_TEXT,
    ChatOrchestrator,
    OrchestratorConfig,
    TurnState,
)
from devops_agent.domain.exceptions import ApiError, ToolNotFoundError, TransportError
from devops_agent.domain.models import Candidate, GenerateResult, Message, Part
from devops_agent.providers.retry import NoRetry, TenacityRetry
from devops_agent.tools.cli_tools import default_tools
from devops_agent.tools.executor import CommandResult, ShellRunner
from devops_agent.tools.registry import ToolRegistry


class ScriptedProvider:
    """按顺序返回预设响应，并记录每次请求时的历史快照。"""

    name = "fake"

    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def generate(self, history, declarations):
        self.requests.append(list(history))
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class RecordingRunner:
    def __init__(self, exit_code=0):
        self.commands = []
        self.exit_code = exit_code

    def run(self, command_line):
        self.commands.append(command_line)
        return CommandResult(output=f"ran: {command_line}", exit_code=self.exit_code)


class RecordingDisplay:
    def __init__(self):
        self.texts = []

    def emit(self, text):
        self.texts.append(text)


class Gate:
    def __init__(self, *answers):
        self._answers = list(answers)
        self.asked = []

    def confirm(self, name, args):
        self.asked.append(name)
        return self._answers.pop(0)


def _turn(*parts, finish="STOP"):
    return GenerateResult(candidates=[Candidate(content=Message(role="model", parts=tuple(parts)), finish_reason=finish)])


def _orchestrator(responses, runner=None, gate=None, safe_mode=False, retry_policy=None):
    provider = ScriptedProvider(responses)
    display = RecordingDisplay()
    orch = ChatOrchestrator(
        provider_client=provider,
        registry=ToolRegistry(default_tools(runner or RecordingRunner())),
        display=display,
        confirmation=gate,
        config=OrchestratorConfig(safe_mode=safe_mode, provider="fake", model="test"),
        retry_policy=retry_policy,
        system_prompt="You are a test assistant.",
    )
    return orch, provider, display


def _assert_calls_answered(messages):
    calls = Counter(c.name for m in messages for c in m.function_calls())
    responses = Counter(
        p.function_response.name for m in messages for p in m.parts if p.function_response is not None
    )
    assert calls == responses


def test_text_turn_settles():
    orch, provider, display = _orchestrator([_turn(Part.from_text("All pods are running."))])
    outcome = orch.handle_user_turn("how are my pods?")

    assert outcome.state == TurnState.TEXT_SETTLED
    assert outcome.requests == 1
    assert display.texts == ["All pods are running."]
    roles = [m.role for m in orch.history]
    assert roles == ["system-prime", "user", "model"]
    assert orch.state == TurnState.AWAITING_INPUT


def test_two_calls_dispatched_in_order_before_next_request():
    runner = RecordingRunner()
    orch, provider, display = _orchestrator(
        [
            _turn(
                Part.from_call("kubectl", {"command": "get pods", "namespace": "web"}),
                Part.from_text("Now checking releases."),
                Part.from_call("helm", {"command": "list"}),
            ),
            _turn(Part.from_text("web has 3 pods and 1 release.")),
        ],
        runner=runner,
    )
    outcome = orch.handle_user_turn("summarize the web namespace")

    assert outcome.requests == 2
    assert runner.commands == ["kubectl --namespace=web get pods", "helm list"]
    assert display.texts == ["Now checking releases.", "web has 3 pods and 1 release."]

    second_request = provider.requests[1]
    _assert_calls_answered(second_request)
    tail = second_request[-3:]
    assert tail[0].role == "model"
    assert [m.parts[0].function_response.name for m in tail[1:]] == ["kubectl", "helm"]
    assert tail[1].parts[0].function_response.result == {
        "output": "ran: kubectl --namespace=web get pods",
        "exit_code": 0,
    }


def test_every_request_has_answered_calls():
    orch, provider, _ = _orchestrator(
        [
            _turn(Part.from_call("bash", {"command": "uptime"})),
            _turn(Part.from_call("az", {"command": "account show"}), Part.from_call("foo", {})),
            _turn(Part.from_text("done")),
        ]
    )
    orch.handle_user_turn("check things")
    assert len(provider.requests) == 3
    for snapshot in provider.requests:
        _assert_calls_answered(snapshot)
    _assert_calls_answered(list(orch.history))


def test_unknown_tool_does_not_abort():
    orch, provider, _ = _orchestrator(
        [
            _turn(Part.from_call("foo", {"x": 1})),
            _turn(Part.from_text("That tool does not exist.")),
        ]
    )
    outcome = orch.handle_user_turn("use foo")

    response = provider.requests[1][-1].parts[0].function_response
    assert response.name == "foo"
    assert response.result == {"error": "Tool not found: foo"}
    assert len(outcome.tool_errors) == 1
    assert isinstance(outcome.tool_errors[0], ToolNotFoundError)
    assert outcome.state == TurnState.TEXT_SETTLED


def test_safe_mode_decline_never_spawns():
    runner = RecordingRunner()
    gate = Gate(False)
    orch, provider, _ = _orchestrator(
        [
            _turn(Part.from_call("bash", {"command": "reboot"})),
            _turn(Part.from_text("Okay, I will not reboot.")),
        ],
        runner=runner,
        gate=gate,
        safe_mode=True,
    )
    outcome = orch.handle_user_turn("reboot the box")

    assert gate.asked == ["bash"]
    assert runner.commands == []
    response = provider.requests[1][-1].parts[0].function_response
    assert response.result == {"result": "Tool execution cancelled by user."}
    assert outcome.tool_errors == []


def test_unsafe_mode_skips_gate():
    runner = RecordingRunner()
    gate = Gate()
    orch, _, _ = _orchestrator(
        [_turn(Part.from_call("bash", {"command": "id"})), _turn(Part.from_text("ok"))],
        runner=runner,
        gate=gate,
        safe_mode=False,
    )
    orch.handle_user_turn("who am i")
    assert gate.asked == []
    assert runner.commands == ["id"]
    assert not orch.safe_mode


def test_nonzero_exit_code_is_reported_without_error():
    orch, provider, _ = _orchestrator(
        [_turn(Part.from_call("bash", {"command": "false"})), _turn(Part.from_text("it failed"))],
        runner=RecordingRunner(exit_code=1),
    )
    outcome = orch.handle_user_turn("run false")
    response = provider.requests[1][-1].parts[0].function_response
    assert response.result == {"output": "ran: false", "exit_code": 1}
    assert outcome.tool_errors == []


@pytest.mark.parametrize("reason", ["SAFETY", "MAX_TOKENS", "RECITATION", "OTHER", "SOMETHING_NEW", None])
def test_terminal_finish_reason_ends_loop(reason):
    orch, provider, display = _orchestrator([_turn(Part.from_text("partial"), finish=reason)])
    outcome = orch.handle_user_turn("hello")

    assert outcome.requests == 1
    assert outcome.finish_reason == reason
    last = orch.history.messages[-1]
    assert last.role == "model"
    assert last.parts[0].text == "partial"
    assert len(orch.history) == 3


def test_terminal_finish_reason_after_call_still_answers_call():
    runner = RecordingRunner()
    orch, provider, _ = _orchestrator(
        [_turn(Part.from_call("kubectl", {"command": "get ns"}), finish="MAX_TOKENS")], runner=runner
    )
    outcome = orch.handle_user_turn("namespaces?")
    assert outcome.requests == 1
    assert runner.commands == ["kubectl get ns"]
    _assert_calls_answered(list(orch.history))


def test_empty_candidates_end_without_mutation():
    orch, _, _ = _orchestrator([GenerateResult(candidates=[])])
    outcome = orch.handle_user_turn("hello")
    assert outcome.state == TurnState.TEXT_SETTLED
    assert [m.role for m in orch.history] == ["system-prime", "user"]


def test_zero_part_turn_ends_without_mutation():
    orch, _, _ = _orchestrator([_turn()])
    orch.handle_user_turn("hello")
    assert [m.role for m in orch.history] == ["system-prime", "user"]


def test_empty_part_turn_appends_placeholder():
    orch, provider, display = _orchestrator([_turn(Part(extra={"thoughtSignature": "x"}))])
    outcome = orch.handle_user_turn("hello")

    assert outcome.requests == 1
    messages = orch.history.messages
    assert messages[-2].parts[0].extra == {"thoughtSignature": "x"}
    assert messages[-1] == Message.text("model", UNEXPECTED_RESPONSE_TEXT)
    assert display.texts == []


def test_model_error_aborts_turn_and_keeps_history():
    orch, _, _ = _orchestrator([ApiError(status=500, body="internal")])
    with pytest.raises(ApiError):
        orch.handle_user_turn("hello")
    assert orch.state == TurnState.ERROR_TERMINAL
    assert [m.role for m in orch.history] == ["system-prime", "user"]

    orch2, provider, _ = _orchestrator(
        [_turn(Part.from_call("bash", {"command": "ls"})), TransportError(code="TRANSPORT_ERROR", message="down")]
    )
    with pytest.raises(TransportError):
        orch2.handle_user_turn("list")
    _assert_calls_answered(list(orch2.history))


def test_interrupted_dispatch_answers_pending_calls():
    class ExplodingGate:
        def confirm(self, name, args):
            raise RuntimeError("console closed")

    orch, _, _ = _orchestrator(
        [_turn(Part.from_call("bash", {"command": "ls"}), Part.from_call("helm", {"command": "list"}))],
        gate=ExplodingGate(),
        safe_mode=True,
    )
    with pytest.raises(RuntimeError):
        orch.handle_user_turn("list")
    history = list(orch.history)
    _assert_calls_answered(history)
    assert history[-1].parts[0].function_response.result == {"error": "Tool call aborted: RuntimeError"}


def test_replay_is_deterministic():
    def script():
        return [
            _turn(Part.from_call("kubectl", {"command": "get pods"}), Part.from_call("helm", {"command": "list"})),
            _turn(Part.from_text("Everything looks healthy.")),
        ]

    first, _, _ = _orchestrator(script())
    second, _, _ = _orchestrator(script())
    first.handle_user_turn("status?")
    second.handle_user_turn("status?")
    dump = lambda o: json.dumps(o.history.to_payload(), sort_keys=True)
    assert dump(first) == dump(second)


def test_retry_policy_is_pluggable():
    error = TransportError(code="TRANSPORT_ERROR", message="flaky")
    orch, provider, _ = _orchestrator(
        [error, _turn(Part.from_text("recovered"))],
        retry_policy=TenacityRetry(max_attempts=2, wait=tenacity.wait_none()),
    )
    outcome = orch.handle_user_turn("hello")
    assert outcome.requests == 1
    assert len(provider.requests) == 2

    orch, provider, _ = _orchestrator([error], retry_policy=NoRetry())
    with pytest.raises(TransportError):
        orch.handle_user_turn("hello")
    assert len(provider.requests) == 1


def test_nul_byte_command_keeps_session_alive():
    provider = ScriptedProvider(
        [_turn(Part.from_call("bash", {"command": "echo a\x00b"})), _turn(Part.from_text("That command is invalid."))]
    )
    orch = ChatOrchestrator(
        provider_client=provider,
        registry=ToolRegistry(default_tools(ShellRunner())),
        display=RecordingDisplay(),
        config=OrchestratorConfig(safe_mode=False, provider="fake", model="test"),
        system_prompt="prime",
    )
    outcome = orch.handle_user_turn("print something")

    assert outcome.state == TurnState.TEXT_SETTLED
    assert len(provider.requests) == 2
    response = provider.requests[1][-1].parts[0].function_response
    assert response.result["error"].startswith("Error executing tool bash:")
    assert orch.state == TurnState.AWAITING_INPUT
