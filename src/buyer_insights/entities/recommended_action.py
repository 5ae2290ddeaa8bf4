"""Recommended action domain entity."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class ActionKind(str, Enum):
    """What running an action produces."""

    ARTIFACT = "artifact"  # client-facing write-up
    THINKING = "thinking"  # internal analysis for the agent


@dataclass(frozen=True)
class RecommendedAction:
    """A "what should the agent do next" suggestion for one buyer.

    Attributes:
        id: Identifier, unique within one recommendation set
        label: Short button text
        command: The command sent back to the model when the action runs
        kind: Whether the action produces an artifact or internal thinking
    """

    id: str
    label: str
    command: str
    kind: ActionKind = ActionKind.ARTIFACT

    @classmethod
    def from_payload(cls, data: dict[str, Any], position: int) -> "RecommendedAction":
        """Build an action from a loosely-shaped provider or storage payload.

        Args:
            data: Mapping with any of id, label, command, type/kind
            position: 1-based position, used when the payload has no id

        Returns:
            A RecommendedAction with defaults filled in
        """
        kind = data.get("kind") or data.get("type")
        return cls(
            id=str(data.get("id") or position),
            label=str(data.get("label") or "Action"),
            command=str(data.get("command") or ""),
            kind=ActionKind.THINKING if kind == ActionKind.THINKING.value else ActionKind.ARTIFACT,
        )

    def to_dict(self) -> dict[str, str]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data
