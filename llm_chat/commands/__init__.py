"""Command implementations for llm-chat."""
