"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system prompt 文本，
用作会话历史开头的 system-prime 消息。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent

FALLBACK_PROMPT = "You are a helpful AI assistant for cloud architects and DevOps engineers."


def load_system_prompt(locale: str = "en") -> str:
    """加载系统提示词文本，文件缺失时退回内置的一句话提示词。"""

    fname = PROMPTS_DIR / locale / "devops_system.md"
    try:
        return fname.read_text(encoding="utf-8")
    except OSError:
        return FALLBACK_PROMPT
