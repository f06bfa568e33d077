"""
Context Selector Registry
=========================

Named, pure reducers ("agents") that turn the frames of a selection into a
compact, JSON-able context payload for the completion service.

Built-in agents:
    context-master  analyzes everything: apps, windows, text & audio
    window-tracker  focuses on app switching patterns
    text-scanner    analyzes visible text (OCR)
    voice-analyzer  focuses on audio transcriptions

Rules:
    - Reducers are total: no well-formed FrameBatch makes them raise
    - Reducers are pure: same frames in, byte-identical output out
    - Image payloads never reach the context
    - Unknown agent ids fail closed to the default (first) agent
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from timeline_agent.models.frames import FrameBatch


logger = logging.getLogger(__name__)


ContextSelector = Callable[[Sequence[FrameBatch]], List[dict]]


class AgentId(str, Enum):
    """Identifiers of the built-in agents."""

    CONTEXT_MASTER = "context-master"
    WINDOW_TRACKER = "window-tracker"
    TEXT_SCANNER = "text-scanner"
    VOICE_ANALYZER = "voice-analyzer"


@dataclass(frozen=True)
class ContextAgent:
    """
    A named context reducer.

    Attributes:
        id: Stable identifier used by clients
        name: Short name, also used in the system instruction
        description: Shown to the user and embedded in the prompt
        select: Reducer from frames to the context payload
    """

    id: str
    name: str
    description: str
    select: ContextSelector

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


# =============================================================================
# Reducers
# =============================================================================

def select_full_context(frames: Sequence[FrameBatch]) -> List[dict]:
    return [
        {
            "timestamp": frame.timestamp_iso,
            "devices": [
                {
                    "device_id": device.device_id,
                    "metadata": device.metadata.model_dump(mode="json"),
                    "audio": [segment.model_dump(mode="json") for segment in device.audio],
                }
                for device in frame.devices
            ],
        }
        for frame in frames
    ]


def select_window_focus(frames: Sequence[FrameBatch]) -> List[dict]:
    return [
        {
            "timestamp": frame.timestamp_iso,
            "windows": [
                {
                    "app_name": device.metadata.app_name,
                    "window_name": device.metadata.window_name,
                }
                for device in frame.devices
            ],
        }
        for frame in frames
    ]


def select_text_only(frames: Sequence[FrameBatch]) -> List[dict]:
    return [
        {
            "timestamp": frame.timestamp_iso,
            "text": [
                device.metadata.ocr_text
                for device in frame.devices
                if device.metadata.ocr_text
            ],
        }
        for frame in frames
    ]


def select_audio_only(frames: Sequence[FrameBatch]) -> List[dict]:
    return [
        {
            "timestamp": frame.timestamp_iso,
            "audio": [
                segment.model_dump(mode="json")
                for device in frame.devices
                for segment in device.audio
            ],
        }
        for frame in frames
    ]


BUILTIN_AGENTS = (
    ContextAgent(
        id=AgentId.CONTEXT_MASTER.value,
        name="context master",
        description="analyzes everything: apps, windows, text & audio",
        select=select_full_context,
    ),
    ContextAgent(
        id=AgentId.WINDOW_TRACKER.value,
        name="window tracker",
        description="focuses on app switching patterns",
        select=select_window_focus,
    ),
    ContextAgent(
        id=AgentId.TEXT_SCANNER.value,
        name="text scanner",
        description="analyzes visible text (OCR)",
        select=select_text_only,
    ),
    ContextAgent(
        id=AgentId.VOICE_ANALYZER.value,
        name="voice analyzer",
        description="focuses on audio transcriptions",
        select=select_audio_only,
    ),
)


# =============================================================================
# Registry
# =============================================================================

class ContextSelectorRegistry:
    """
    Ordered set of context agents.

    The first registered agent is the default unless default_id says
    otherwise. New agents are added with register(); ingestion and the
    query engine never need to change for that.

    Example:
        registry = ContextSelectorRegistry()
        agent = registry.resolve("window-tracker")
        payload = agent.select(frames)
    """

    def __init__(
        self,
        agents: Iterable[ContextAgent] = BUILTIN_AGENTS,
        default_id: Optional[str] = None,
    ) -> None:
        self._agents: Dict[str, ContextAgent] = {}
        for agent in agents:
            self.register(agent)

        if not self._agents:
            raise ValueError("registry needs at least one agent")

        self._default_id = next(iter(self._agents))
        if default_id is not None:
            if default_id not in self._agents:
                logger.warning(
                    f"Configured default agent {default_id!r} is unknown, "
                    f"using {self._default_id!r}"
                )
            else:
                self._default_id = default_id

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    @property
    def default(self) -> ContextAgent:
        return self._agents[self._default_id]

    def register(self, agent: ContextAgent) -> None:
        """
        Add an agent.

        Raises:
            ValueError: If an agent with the same id is already registered
        """
        if agent.id in self._agents:
            raise ValueError(f"Agent already registered: {agent.id}")
        self._agents[agent.id] = agent

    def resolve(self, agent_id: Optional[str]) -> ContextAgent:
        """Look up an agent, falling back to the default for unknown ids."""
        if agent_id is None:
            return self.default
        agent = self._agents.get(agent_id)
        if agent is None:
            logger.warning(f"Unknown agent {agent_id!r}, using {self._default_id!r}")
            return self.default
        return agent

    def agents(self) -> List[ContextAgent]:
        return list(self._agents.values())
