"""工具系统。

- definitions: 工具声明与能力契约。
- executor: 子进程执行。
- cli_tools: 内置的 bash / kubectl / helm / az。
- confirmation: 执行前的人工确认。
- registry: 名称 -> 工具的注册表与调度。
"""
