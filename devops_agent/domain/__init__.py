"""领域层模型与协议。

包含：
- models: 统一的 Message / Part / Candidate / GenerateResult 模型。
- conversation: 只追加的会话历史 ConversationHistory。
- exceptions: 错误类型定义。
"""
