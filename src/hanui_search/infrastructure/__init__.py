"""
Infrastructure Layer - External Systems Integration

Contains:
- sources: one adapter per literature/trial backend
- llm: text generation used by query expansion
"""
