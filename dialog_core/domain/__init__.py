"""领域层模型与协议。

包含：
- models: 统一的 ConversationTurn / NormalizedRequest / NormalizedResponse 模型。
- conversation: 按用户划分的 ConversationStore 与 UserState。
- exceptions: 业务异常类型定义。
"""
