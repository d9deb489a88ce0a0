"""Two-part video stitching (crossfade with simple-concat fallback)."""

from pev.stitch.engine import StitchEngine, StitchResult
from pev.stitch.strategies import (
    CROSSFADE,
    SIMPLE_CONCAT,
    CrossfadeStrategy,
    EncodePolicy,
    SimpleConcatStrategy,
    StitchTiming,
    default_strategies,
)
from pev.stitch.transcoder import ClipInfo, Transcoder, load_transcoder, reset_transcoder

__all__ = [
    "CROSSFADE",
    "SIMPLE_CONCAT",
    "ClipInfo",
    "CrossfadeStrategy",
    "EncodePolicy",
    "SimpleConcatStrategy",
    "StitchEngine",
    "StitchResult",
    "StitchTiming",
    "Transcoder",
    "default_strategies",
    "load_transcoder",
    "reset_transcoder",
]
