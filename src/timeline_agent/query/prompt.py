"""
Prompt Construction
===================

Builds the message list sent to the completion service.

Layout:
    1. system     agent role, clock/timezone facts, UTC rendering rules
    2. ...        prior conversation turns, verbatim
    3. user       "Context data: <json>" followed by the new question

Context timestamps are UTC. The model is told to answer in the viewer's
local time unless UTC is explicitly requested.
"""

import json
from typing import Any, List, Sequence

from timeline_agent.collaborators import Clock, format_utc_offset
from timeline_agent.context.registry import ContextAgent
from timeline_agent.models.conversation import Message


def serialize_context(payload: Any) -> str:
    """Compact, key-order-preserving JSON."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def build_system_instruction(agent: ContextAgent, clock: Clock) -> str:
    now = clock.now()
    return (
        f'You are a helpful assistant specialized as a "{agent.name}" '
        f"analyzing screen & mic recordings.\n"
        f"Rules:\n"
        f"- Current time: {now.strftime('%a %b %d %Y %H:%M:%S')} "
        f"({now.isoformat(timespec='seconds')})\n"
        f"- User timezone: {clock.timezone_name()}\n"
        f"- User timezone offset from UTC: {format_utc_offset(clock.utc_offset())}\n"
        f"- All timestamps in the context data are in UTC\n"
        f"- Convert timestamps to local time for human-readable responses\n"
        f"- Never output UTC time unless explicitly asked\n"
        f"- Focus on {agent.description}"
    )


def build_user_turn(context_payload: Any, question: str) -> str:
    return f"Context data: {serialize_context(context_payload)}\n\n{question}"


def build_messages(
    history: Sequence[Message],
    question: str,
    context_payload: Any,
    agent: ContextAgent,
    clock: Clock,
) -> List[dict]:
    """
    Assemble the full chat request.

    Args:
        history: Committed turns preceding this question
        question: The new user question
        context_payload: Output of the agent's reducer
        agent: Active context agent
        clock: Viewer clock

    Returns:
        Role-tagged message dicts, system first, new question last.
    """
    messages = [{"role": "system", "content": build_system_instruction(agent, clock)}]
    messages.extend(message.to_chat() for message in history)
    messages.append({"role": "user", "content": build_user_turn(context_payload, question)})
    return messages
