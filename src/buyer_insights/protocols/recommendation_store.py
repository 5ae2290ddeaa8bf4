"""Durable recommendation store protocol.

Defines the interface for the durable tier of the recommendation cache:
a table-like store supporting insert, filtered status update and
filtered select, keyed by subject id plus creation time.

Implementations can include:
- Redis Stack with a redisvl search index (default)
- A relational table (buyer_recommendations)
- An in-memory fake for tests
"""

from typing import Protocol, runtime_checkable

from buyer_insights.entities import RecommendationRecord


@runtime_checkable
class RecommendationStore(Protocol):
    """Protocol for the durable tier.

    Calls are blocking; the cache runs them off the event loop.
    """

    def insert(self, record: RecommendationRecord) -> str:
        """Insert a row.

        Args:
            record: The row to insert (status is stored as given)

        Returns:
            The storage key for the row
        """
        ...

    def mark_stale(self, subject_id: str) -> int:
        """Set status = stale on every valid row of a subject.

        Args:
            subject_id: The subject whose rows are demoted

        Returns:
            Number of rows updated
        """
        ...

    def find_valid(self, now: float) -> list[RecommendationRecord]:
        """Select rows with status = valid AND expires_at > now.

        Args:
            now: Current Unix timestamp

        Returns:
            Matching rows, possibly several per subject
        """
        ...

    def find_valid_for_subject(self, subject_id: str, now: float) -> list[RecommendationRecord]:
        """Same filter as find_valid, restricted to one subject."""
        ...

    def health_check(self) -> bool:
        """Check if the store is reachable."""
        ...
