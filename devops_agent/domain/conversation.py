"""会话历史。

ConversationHistory 由单个会话独占，只能追加，不会被重排或截断。
历史长度不设上限：长时间运行的会话内存占用会持续增长，
调用方如需限制，应当开启新会话。
"""

from typing import Any, Dict, Iterator, List, Tuple

from .models import WIRE_ROLES, Message, Part


class ConversationHistory:
    """只追加的消息序列，第一条必须是 system-prime 引导消息。"""

    def __init__(self, system_prompt: str):
        self._messages: List[Message] = [Message.text("system-prime", system_prompt)]

    def append(self, message: Message) -> None:
        if message.role == "system-prime":
            raise ValueError("system-prime message can only open the history")
        self._messages.append(message)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def to_payload(self) -> List[Dict[str, Any]]:
        """渲染为 Gemini contents 数组。"""

        return [message_to_payload(m) for m in self._messages]


def part_to_payload(part: Part) -> Dict[str, Any]:
    payload: Dict[str, Any] = dict(part.extra)
    if part.text is not None:
        payload["text"] = part.text
    if part.function_call is not None:
        payload["functionCall"] = {
            "name": part.function_call.name,
            "args": dict(part.function_call.args),
        }
    if part.function_response is not None:
        payload["functionResponse"] = {
            "name": part.function_response.name,
            "response": dict(part.function_response.result),
        }
    return payload


def message_to_payload(message: Message) -> Dict[str, Any]:
    return {
        "role": WIRE_ROLES[message.role],
        "parts": [part_to_payload(p) for p in message.parts],
    }
