"""
Context Module
==============

Reducers that turn selected frames into task-specific context payloads.
"""

from timeline_agent.context.registry import (
    BUILTIN_AGENTS,
    AgentId,
    ContextAgent,
    ContextSelectorRegistry,
    select_audio_only,
    select_full_context,
    select_text_only,
    select_window_focus,
)


__all__ = [
    "AgentId",
    "ContextAgent",
    "ContextSelectorRegistry",
    "BUILTIN_AGENTS",
    "select_full_context",
    "select_window_focus",
    "select_text_only",
    "select_audio_only",
]
