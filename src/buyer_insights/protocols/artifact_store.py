"""Artifact storage protocol.

Completed generations are the system of record. Budget bands are never
stored; they are recomputed from the stored text on demand.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class ArtifactStore(Protocol):
    """Protocol for durable artifact storage."""

    def save(self, subject_id: str, text: str, kind: str) -> str:
        """Persist a completed artifact.

        Args:
            subject_id: The buyer the artifact is about
            text: The full generated text
            kind: "artifact" or "thinking"

        Returns:
            The storage key for the artifact
        """
        ...

    def get_text(self, key: str) -> str | None:
        """Read back the text of a stored artifact, or None if unknown."""
        ...
