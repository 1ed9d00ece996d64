"""Shared building blocks: SSE parsing, background tasks, session state and console helpers."""
