"""终端渲染：把模型返回的文本以 Markdown 形式输出。"""

from typing import Optional

from rich.console import Console
from rich.markdown import Markdown


class MarkdownRenderer:
    """在操作员终端上渲染模型文本。"""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def emit(self, text: str) -> None:
        if not text.strip():
            return
        self.console.print(Markdown(text))
        self.console.print()
