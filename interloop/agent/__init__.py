"""
Agent 层

- runtime:  Agent Loop 执行周期（模型调用、工具执行、事件通道）
- security: 钩子系统
- session:  多轮会话
"""
