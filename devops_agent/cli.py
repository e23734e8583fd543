"""命令行入口。

提供面向运维人员的交互式对话循环：加载配置、初始化日志与 Orchestrator，
然后逐行读取用户输入，直到 EOF 或 exit / quit。
"""

import argparse
import sys
from typing import Optional, Sequence, TextIO

import yaml
from rich.console import Console

from devops_agent.agents.orchestrator import ChatOrchestrator
from devops_agent.api.service import build_orchestrator
from devops_agent.config.settings import load_settings
from devops_agent.domain.exceptions import AgentError, ConfigurationError
from devops_agent.infrastructure.logging.logger import logger, setup_logger

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
EXIT_COMMANDS = {"exit", "quit"}
GENERIC_ERROR_MESSAGE = "An error occurred while processing your request. Please try again."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devops-agent",
        description="Chat with an AI assistant that can run bash, kubectl, helm and az for you.",
    )
    parser.add_argument("--config", help="Path to the configuration file (default: ./config.yaml).")
    parser.add_argument("--log-level", help="Log level (debug, info, warning, error, critical).")
    parser.add_argument(
        "--unsafe",
        action="store_true",
        help="Run in unsafe mode (no confirmation for tool execution).",
    )
    return parser


def run_repl(orchestrator: ChatOrchestrator, console: Console, stdin: Optional[TextIO] = None) -> None:
    """逐行读取操作员输入，直到 EOF 或退出命令。"""

    stream = stdin or sys.stdin
    while True:
        console.print("> ", end="", markup=False)
        line = stream.readline()
        if not line:
            console.print("\nExiting due to EOF (CTRL+D)")
            return
        text = line.strip()
        if not text:
            continue
        if text.lower() in EXIT_COMMANDS:
            console.print("Exiting application")
            return
        try:
            orchestrator.handle_user_turn(text)
        except AgentError as exc:
            logger.error(
                f"Error in chat: {exc}",
                extra={"extra": {"error_code": exc.code, "error": exc.message}},
            )
            console.print(GENERIC_ERROR_MESSAGE, markup=False)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console(highlight=False)

    level = args.log_level.upper() if args.log_level else None
    level_warning = None
    if level and level not in LOG_LEVELS:
        level_warning = f"Invalid log level '{args.log_level}', defaulting to 'info'"
        level = "INFO"

    console.print("DevOps AI Agent")
    console.print("---------------")
    console.print(f"Using configuration file: {args.config or 'config.yaml'}", markup=False)

    try:
        cfg = load_settings(args.config, unsafe_mode=True if args.unsafe else None, log_level=level)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        console.print(f"Error loading configuration: {exc}", markup=False)
        return 1

    setup_logger(log_dir=cfg.log_dir, level=cfg.log_level, redact_content=cfg.log_redact_content)
    if level_warning:
        logger.warning(level_warning)
        console.print(level_warning, markup=False)
    if cfg.unsafe_mode:
        logger.warning("Running in unsafe mode - commands will execute without confirmation")
        console.print("[yellow]Running in unsafe mode - commands will execute without confirmation[/yellow]")

    try:
        orchestrator = build_orchestrator(cfg)
    except ConfigurationError as exc:
        logger.error(f"Error creating LLM provider ({cfg.provider}): {exc}")
        console.print(f"Error creating LLM provider ({cfg.provider}): {exc}", markup=False)
        return 1

    console.print(f"Successfully initialized LLM provider {cfg.provider} with model {cfg.model}", markup=False)
    try:
        run_repl(orchestrator, console)
    except KeyboardInterrupt:
        console.print("\nInterrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
