"""
系统层

- llm:      内容模型与模型传输
- tools:    工具定义
- services: 日志与配置
"""
