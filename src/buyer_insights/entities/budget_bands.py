"""Budget bands domain entity."""

from dataclasses import asdict, dataclass

BAND_NAMES = ("conservative", "target", "stretch")


@dataclass(frozen=True)
class BudgetBands:
    """Price ranges parsed from a budget strategy artifact.

    Derived data: always recomputed from the artifact text, never the
    system of record. A band is complete only when both of its ends are set.
    """

    conservative_min: float | None = None
    conservative_max: float | None = None
    target_min: float | None = None
    target_max: float | None = None
    stretch_min: float | None = None
    stretch_max: float | None = None

    def band(self, name: str) -> tuple[float | None, float | None]:
        """Return the (min, max) pair for a band name."""
        return getattr(self, f"{name}_min"), getattr(self, f"{name}_max")

    def is_complete(self, name: str) -> bool:
        low, high = self.band(name)
        return low is not None and high is not None

    @property
    def has_complete_band(self) -> bool:
        return any(self.is_complete(name) for name in BAND_NAMES)

    def to_dict(self) -> dict[str, float | None]:
        return asdict(self)
