"""Model client, review tools and the agentic review loop."""

from .client import ReviewLLMClient

__all__ = ["ReviewLLMClient"]
