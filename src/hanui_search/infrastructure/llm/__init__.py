"""LLM integration for query expansion."""

from .client import OpenAITextGenerator, TextGenerator

__all__ = ["OpenAITextGenerator", "TextGenerator"]
