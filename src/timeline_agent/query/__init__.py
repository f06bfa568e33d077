"""
Query Module
============

Streaming natural-language queries over a selected time window.

    - QueryEngine: cancellable streaming runner writing into a Conversation
    - QueryHandle: caller's stream of deltas for one query
    - OpenAICompletionClient: OpenAI-compatible streaming client
    - build_messages: prompt assembly
"""

from timeline_agent.query.client import CompletionClient, OpenAICompletionClient
from timeline_agent.query.engine import (
    GENERIC_FAILURE_MESSAGE,
    QueryEngine,
    QueryHandle,
    QueryOutcome,
    QueryState,
)
from timeline_agent.query.prompt import (
    build_messages,
    build_system_instruction,
    serialize_context,
)


__all__ = [
    "CompletionClient",
    "OpenAICompletionClient",
    "QueryEngine",
    "QueryHandle",
    "QueryOutcome",
    "QueryState",
    "GENERIC_FAILURE_MESSAGE",
    "build_messages",
    "build_system_instruction",
    "serialize_context",
]
