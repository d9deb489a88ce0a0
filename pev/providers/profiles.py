"""Replicate-hosted video models: profiles and per-model input builders."""

from __future__ import annotations

from typing import Any

from pev.errors import MissingCredentialError
from pev.providers.base import ModelProfile, Resolution, nearest_resolution, snap_duration

KLING_NEGATIVE_PROMPT = "blur, distort, low quality, text overlays, watermarks"

_SORA_RESOLUTIONS = (
    Resolution(1280, 720, "landscape"),
    Resolution(720, 1280, "portrait"),
)

SORA_2 = ModelProfile(
    model_id="sora-2",
    display_name="OpenAI Sora 2",
    version="299f052ab4dd6c750621f8e2ce48e26edcde381ab041d61a7ec57785cef5b0d3",
    requires_secondary_credential=True,
    supported_durations=(4, 8, 12),
    supported_resolutions=_SORA_RESOLUTIONS,
    max_duration=12,
    uses_aspect_ratio=True,
)

SORA_2_PRO = ModelProfile(
    model_id="sora-2-pro",
    display_name="OpenAI Sora 2 Pro",
    version="4bdefbd92a923832d1a5e0a40d419ea8cf3e0743abfcdca6e28268877a81b0c4",
    requires_secondary_credential=True,
    supported_durations=(4, 8, 12),
    supported_resolutions=_SORA_RESOLUTIONS,
    max_duration=12,
    uses_aspect_ratio=True,
)

WAN_2_5 = ModelProfile(
    model_id="wan-2.5",
    display_name="Alibaba Wan 2.5",
    version="4e22e64c604706aa4ac1929a7ae146ea033f39bb228e896da79d91b7a39e8d32",
    requires_secondary_credential=False,
    supported_durations=(5, 10),
    supported_resolutions=(
        Resolution(1280, 720, "720p"),
        Resolution(1920, 1080, "1080p"),
        Resolution(720, 1280, "portrait-720p"),
        Resolution(1080, 1920, "portrait-1080p"),
    ),
    max_duration=10,
    uses_aspect_ratio=False,
)

HAILUO_2_3 = ModelProfile(
    model_id="hailuo-2.3",
    display_name="MiniMax Hailuo 2.3",
    version="23a02633b5a44780345a59d4d43f8bd510efa239c56f08f29639ff24fa6615e1",
    requires_secondary_credential=False,
    supported_durations=(6, 10),
    supported_resolutions=(
        Resolution(1365, 768, "768p"),
        Resolution(1920, 1080, "1080p"),
    ),
    max_duration=10,
    uses_aspect_ratio=False,
)

KLING_2_5 = ModelProfile(
    model_id="kling-2.5",
    display_name="Kling 2.5 Turbo Pro",
    version="18f41bfca7f1997ce37b04b407152c385c9159095681a6f5a4ff47718bc25a57",
    requires_secondary_credential=False,
    supported_durations=(5, 10),
    supported_resolutions=(
        Resolution(1280, 720, "16:9"),
        Resolution(720, 1280, "9:16"),
        Resolution(1080, 1080, "1:1"),
    ),
    max_duration=10,
    uses_aspect_ratio=True,
)


class SoraAdapter:
    """Sora takes a landscape/portrait aspect ratio and 4/8/12 seconds."""

    def __init__(self, profile: ModelProfile):
        self.profile = profile

    def build_input(
        self,
        prompt: str,
        width: int,
        height: int,
        duration_seconds: float,
        secondary_credential: str | None = None,
    ) -> dict[str, Any]:
        if not secondary_credential:
            raise MissingCredentialError(
                f"OpenAI API key required for {self.profile.model_id}. Try wan-2.5 or hailuo-2.3 instead."
            )
        # Square requests go portrait; only wider-than-tall is landscape
        return {
            "prompt": prompt,
            "aspect_ratio": "landscape" if width > height else "portrait",
            "seconds": snap_duration(duration_seconds, [(6, 4), (10, 8)], 12),
            "openai_api_key": secondary_credential,
        }


class WanAdapter:
    """Wan takes an explicit ``WxH`` size and 5/10 seconds."""

    def __init__(self, profile: ModelProfile):
        self.profile = profile

    def build_input(
        self,
        prompt: str,
        width: int,
        height: int,
        duration_seconds: float,
        secondary_credential: str | None = None,
    ) -> dict[str, Any]:
        bucket = nearest_resolution(self.profile, width, height)
        return {
            "prompt": prompt,
            "size": f"{bucket.width}x{bucket.height}",
            "duration": snap_duration(duration_seconds, [(6, 5)], 10),
            "enable_prompt_expansion": True,
        }


class HailuoAdapter:
    """Hailuo takes 768p/1080p; 1080p only renders 6 seconds."""

    def __init__(self, profile: ModelProfile):
        self.profile = profile

    def build_input(
        self,
        prompt: str,
        width: int,
        height: int,
        duration_seconds: float,
        secondary_credential: str | None = None,
    ) -> dict[str, Any]:
        bucket = nearest_resolution(self.profile, width, height)
        if bucket.label == "1080p":
            duration = 6
        else:
            duration = snap_duration(duration_seconds, [(8, 6)], 10)
        return {
            "prompt": prompt,
            "resolution": bucket.label,
            "duration": duration,
            "prompt_optimizer": True,
        }


class KlingAdapter:
    """Kling takes 16:9 / 9:16 / 1:1 and 5/10 seconds."""

    def __init__(self, profile: ModelProfile):
        self.profile = profile

    def build_input(
        self,
        prompt: str,
        width: int,
        height: int,
        duration_seconds: float,
        secondary_credential: str | None = None,
    ) -> dict[str, Any]:
        bucket = nearest_resolution(self.profile, width, height)
        return {
            "prompt": prompt,
            "aspect_ratio": bucket.label,
            "duration": snap_duration(duration_seconds, [(6, 5)], 10),
            "negative_prompt": KLING_NEGATIVE_PROMPT,
        }


ADAPTERS = {
    "sora-2": SoraAdapter(SORA_2),
    "sora-2-pro": SoraAdapter(SORA_2_PRO),
    "wan-2.5": WanAdapter(WAN_2_5),
    "hailuo-2.3": HailuoAdapter(HAILUO_2_3),
    "kling-2.5": KlingAdapter(KLING_2_5),
}
