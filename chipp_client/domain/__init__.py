"""领域层模型与异常。

包含：
- models: Message / Session / ChatResult 等统一模型。
- exceptions: 客户端异常类型定义。
"""
