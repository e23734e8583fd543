"""工具执行前的人工确认。

safe 模式下，每次工具调用前都会询问操作员；只有明确输入 y / yes
（忽略大小写与首尾空白）才会放行，空输入或输入流结束（EOF）一律视为拒绝。
unsafe 模式下 Orchestrator 使用 AutoApprove，不做任何询问。
"""

import sys
from typing import Any, Dict, Optional, Protocol, TextIO

from rich.console import Console
from rich.markup import escape

AFFIRMATIVE = {"y", "yes"}


class ConfirmationGate(Protocol):
    def confirm(self, name: str, args: Dict[str, Any]) -> bool:
        ...


class AutoApprove:
    """unsafe 模式：总是放行。"""

    def confirm(self, name: str, args: Dict[str, Any]) -> bool:
        return True


class ConsoleConfirmation:
    """从操作员终端读取一行输入作为确认结果。"""

    def __init__(self, console: Optional[Console] = None, stdin: Optional[TextIO] = None):
        self._console = console or Console(highlight=False)
        self._stdin = stdin

    def confirm(self, name: str, args: Dict[str, Any]) -> bool:
        self._console.print(f"AI wants to use tool: [bold]{name}[/bold] with args: {escape(repr(args))}", markup=True)
        self._console.print("Allow this action? [y/N] ", end="", markup=False)
        stream = self._stdin or sys.stdin
        line = stream.readline()
        if not line:
            # EOF
            self._console.print()
            return False
        return line.strip().lower() in AFFIRMATIVE
