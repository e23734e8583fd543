"""子进程执行。

所有命令行工具共享同一种执行方式：拼出一条 shell 命令，
通过 `bash -c` 执行，捕获合并后的 stdout/stderr 与退出码。

- 启动失败（bash 不存在、命令含 NUL 字节等）抛出 ToolLaunchError。
- 非零退出码不是错误，按正常结果返回。
"""

import subprocess
from dataclasses import dataclass
from typing import Any, Dict, Protocol, Sequence

from devops_agent.domain.exceptions import ToolLaunchError


@dataclass(frozen=True)
class CommandResult:
    """一次命令执行的结果。"""

    output: str
    exit_code: int

    def to_payload(self) -> Dict[str, Any]:
        return {"output": self.output, "exit_code": self.exit_code}


class CommandRunner(Protocol):
    def run(self, command_line: str) -> CommandResult:
        ...


class ShellRunner:
    """通过下级 shell 进程执行命令，阻塞直到进程退出。"""

    def __init__(self, shell: Sequence[str] = ("bash", "-c")):
        self._shell = list(shell)

    def run(self, command_line: str) -> CommandResult:
        try:
            proc = subprocess.run(
                self._shell + [command_line],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                check=False,
            )
        except (OSError, ValueError) as exc:
            # ValueError: 命令中含有 NUL 字节等无法传给 exec 的内容
            raise ToolLaunchError(f"failed to execute command: {exc}") from exc
        output = proc.stdout.decode("utf-8", errors="replace") if proc.stdout else ""
        return CommandResult(output=output, exit_code=proc.returncode)
