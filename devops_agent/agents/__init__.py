"""对话编排：ChatOrchestrator 状态机。"""
