"""Named stitching strategies, tried in order by the engine.

Each strategy turns two probed clips into one ffmpeg invocation and states
the duration of what it will produce. ``plan`` raises TranscoderError for
inputs it cannot handle so the engine moves on to the next strategy.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pev.errors import TranscoderError
from pev.stitch.transcoder import ClipInfo

CROSSFADE = "crossfade"
SIMPLE_CONCAT = "simple-concat"


@dataclass(frozen=True)
class StitchTiming:
    transition_seconds: float = 0.8
    fade_out_seconds: float = 1.0


@dataclass(frozen=True)
class EncodePolicy:
    """Fixed H.264 / AAC output policy."""

    crf: int = 23
    preset: str = "medium"
    audio_bitrate: str = "128k"

    def args(self, with_audio: bool) -> list[str]:
        args = ["-c:v", "libx264", "-preset", self.preset, "-crf", str(self.crf), "-pix_fmt", "yuv420p"]
        if with_audio:
            args += ["-c:a", "aac", "-b:a", self.audio_bitrate]
        return args + ["-movflags", "+faststart"]


@dataclass(frozen=True)
class StitchPlan:
    args: list[str]
    duration: float


class StitchStrategy(Protocol):
    name: str

    def plan(self, clip_a: ClipInfo, clip_b: ClipInfo, output: Path) -> StitchPlan:
        """Return the ffmpeg arguments and resulting duration."""
        ...


def _fade_out(kind: str, total: float, fade: float) -> str:
    start = max(total - fade, 0.0)
    return f"{kind}=t=out:st={start:.3f}:d={min(fade, total):.3f}"


def _command(
    clip_a: ClipInfo,
    clip_b: ClipInfo,
    graph: list[str],
    with_audio: bool,
    encode: EncodePolicy,
    output: Path,
) -> list[str]:
    args = [
        "-y",
        "-i", str(clip_a.path),
        "-i", str(clip_b.path),
        "-filter_complex", ";".join(graph),
        "-map", "[v]",
    ]
    args += ["-map", "[a]"] if with_audio else ["-an"]
    return args + encode.args(with_audio) + [str(output)]


class CrossfadeStrategy:
    """Video ``xfade`` + audio ``acrossfade`` at the seam, fade-out at the tail."""

    name = CROSSFADE

    def __init__(self, timing: StitchTiming | None = None, encode: EncodePolicy | None = None):
        self.timing = timing or StitchTiming()
        self.encode = encode or EncodePolicy()

    def plan(self, clip_a: ClipInfo, clip_b: ClipInfo, output: Path) -> StitchPlan:
        t = self.timing.transition_seconds
        fade = self.timing.fade_out_seconds
        if clip_a.duration <= t or clip_b.duration <= t:
            raise TranscoderError(
                f"Clips ({clip_a.duration:.2f}s, {clip_b.duration:.2f}s) are too short for a {t}s crossfade"
            )
        offset = clip_a.duration - t
        total = clip_a.duration + clip_b.duration - t
        with_audio = clip_a.has_audio and clip_b.has_audio
        graph = [
            f"[0:v][1:v]xfade=transition=fade:duration={t:.3f}:offset={offset:.3f},"
            f"{_fade_out('fade', total, fade)}[v]"
        ]
        if with_audio:
            graph.append(f"[0:a][1:a]acrossfade=d={t:.3f},{_fade_out('afade', total, fade)}[a]")
        return StitchPlan(_command(clip_a, clip_b, graph, with_audio, self.encode, output), total)


class SimpleConcatStrategy:
    """Sequential ``concat`` with only a tail fade-out.

    Clip B is scaled to clip A's frame size so mismatched inputs that break
    ``xfade`` still concatenate.
    """

    name = SIMPLE_CONCAT

    def __init__(self, timing: StitchTiming | None = None, encode: EncodePolicy | None = None):
        self.timing = timing or StitchTiming()
        self.encode = encode or EncodePolicy()

    def plan(self, clip_a: ClipInfo, clip_b: ClipInfo, output: Path) -> StitchPlan:
        total = clip_a.duration + clip_b.duration
        with_audio = clip_a.has_audio and clip_b.has_audio
        scale = f"scale={clip_a.width}:{clip_a.height}," if clip_a.width and clip_a.height else ""
        graph = [
            "[0:v]setsar=1[v0]",
            f"[1:v]{scale}setsar=1[v1]",
        ]
        if with_audio:
            graph.append("[v0][0:a][v1][1:a]concat=n=2:v=1:a=1[cv][ca]")
            graph.append(f"[ca]{_fade_out('afade', total, self.timing.fade_out_seconds)}[a]")
        else:
            graph.append("[v0][v1]concat=n=2:v=1:a=0[cv]")
        graph.append(f"[cv]{_fade_out('fade', total, self.timing.fade_out_seconds)}[v]")
        return StitchPlan(_command(clip_a, clip_b, graph, with_audio, self.encode, output), total)


def default_strategies(
    timing: StitchTiming | None = None, encode: EncodePolicy | None = None
) -> list[StitchStrategy]:
    return [CrossfadeStrategy(timing, encode), SimpleConcatStrategy(timing, encode)]
