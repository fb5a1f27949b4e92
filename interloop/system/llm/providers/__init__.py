"""
LLM Providers
"""

from interloop.system.llm.providers.gemini import GeminiInteractionsTransport, create_gemini_transport

__all__ = [
    "GeminiInteractionsTransport",
    "create_gemini_transport",
]
