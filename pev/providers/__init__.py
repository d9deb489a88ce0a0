"""Provider adapter registry: model profiles and request normalization."""

from __future__ import annotations

import logging
from typing import Any

from pev.errors import InvalidRequestError, UnknownModelError
from pev.providers.base import ModelProfile, ProviderAdapter, Resolution
from pev.providers.profiles import ADAPTERS

logger = logging.getLogger(__name__)


def get_adapter(model: str) -> ProviderAdapter:
    """Return the adapter for ``model``. Raises UnknownModelError."""
    adapter = ADAPTERS.get(model)
    if adapter is None:
        raise UnknownModelError(model, supported=sorted(ADAPTERS))
    return adapter


def get_profile(model: str) -> ModelProfile:
    return get_adapter(model).profile


def list_profiles() -> list[ModelProfile]:
    return [adapter.profile for adapter in ADAPTERS.values()]


def build_request_payload(
    model: str,
    prompt: str,
    width: int,
    height: int,
    duration_seconds: float,
    *,
    secondary_credential: str | None = None,
) -> dict[str, Any]:
    """Normalize a request into a Replicate ``{version, input}`` body.

    Pure: identical arguments always give identical payloads. Durations above
    the model maximum are clamped; durations under one second, empty prompts
    and non-positive dimensions are rejected.
    """
    adapter = get_adapter(model)
    profile = adapter.profile
    if not prompt or not prompt.strip():
        raise InvalidRequestError("Prompt is required")
    if duration_seconds < 1:
        raise InvalidRequestError("Duration must be at least 1 second.")
    if width <= 0 or height <= 0:
        raise InvalidRequestError(f"Invalid dimensions: {width}x{height}")
    if duration_seconds > profile.max_duration:
        logger.info(
            "Requested %ss but %s max is %ss; clamping",
            duration_seconds, model, profile.max_duration,
        )
    return {
        "version": profile.version,
        "input": adapter.build_input(
            prompt, width, height, duration_seconds, secondary_credential=secondary_credential
        ),
    }


__all__ = [
    "ModelProfile",
    "ProviderAdapter",
    "Resolution",
    "build_request_payload",
    "get_adapter",
    "get_profile",
    "list_profiles",
]
