"""Concrete provider backends."""

from trustee_llm.providers.anthropic import AnthropicAdapter

__all__ = ["AnthropicAdapter"]
