"""Model profile descriptor and the adapter protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

LANDSCAPE = "landscape"
PORTRAIT = "portrait"
SQUARE = "square"


@dataclass(frozen=True)
class Resolution:
    width: int
    height: int
    label: str

    @property
    def orientation(self) -> str:
        return orientation_of(self.width, self.height)

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class ModelProfile:
    """Static capability descriptor for one provider model."""

    model_id: str
    display_name: str
    version: str
    requires_secondary_credential: bool
    supported_durations: tuple[int, ...]
    supported_resolutions: tuple[Resolution, ...]
    max_duration: int
    uses_aspect_ratio: bool


class ProviderAdapter(Protocol):
    """Turns normalized request values into a provider ``input`` object."""

    profile: ModelProfile

    def build_input(
        self,
        prompt: str,
        width: int,
        height: int,
        duration_seconds: float,
        secondary_credential: str | None = None,
    ) -> dict[str, Any]:
        """Return the model-specific input fields."""
        ...


def orientation_of(width: int, height: int) -> str:
    if width > height:
        return LANDSCAPE
    if height > width:
        return PORTRAIT
    return SQUARE


def nearest_resolution(profile: ModelProfile, width: int, height: int) -> Resolution:
    """Pick the supported bucket closest to ``width`` x ``height``.

    Buckets with the requested orientation win; among them the closest pixel
    area is chosen (first listed on ties). Models without a bucket of that
    orientation consider all buckets.
    """
    wanted = orientation_of(width, height)
    candidates = [r for r in profile.supported_resolutions if r.orientation == wanted]
    if not candidates:
        candidates = list(profile.supported_resolutions)
    area = width * height
    return min(candidates, key=lambda r: abs(r.area - area))


def snap_duration(duration_seconds: float, steps: list[tuple[float, int]], ceiling: int) -> int:
    """Threshold snap: first ``(upper_bound, value)`` with duration <= bound, else ``ceiling``."""
    for upper_bound, value in steps:
        if duration_seconds <= upper_bound:
            return value
    return ceiling
