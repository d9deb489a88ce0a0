"""FFmpeg transcoder: lazily located, cached process-wide, one stitch at a time."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from pev.errors import TranscoderError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 600.0


@dataclass(frozen=True)
class ClipInfo:
    path: Path
    duration: float
    has_audio: bool
    width: int = 0
    height: int = 0


async def _exec(argv: list[str], timeout: float) -> tuple[int, str, str]:
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise TranscoderError(f"Could not start {argv[0]}: {e}") from e
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise TranscoderError(f"{Path(argv[0]).name} timed out after {timeout:.0f}s") from e
    return (
        proc.returncode or 0,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


class Transcoder:
    """Thin async wrapper over the ffmpeg / ffprobe binaries.

    Not reentrant: callers hold ``lock`` for the whole of a stitch so
    concurrent stitches queue instead of interleaving.
    """

    def __init__(self, ffmpeg: str, ffprobe: str, version: str = ""):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.version = version
        self.lock = asyncio.Lock()

    async def run(self, args: list[str], timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        """Run ffmpeg with ``args``; raise TranscoderError on a non-zero exit."""
        logger.debug("Running ffmpeg %s", " ".join(args))
        code, _, stderr = await _exec([self.ffmpeg, "-hide_banner", *args], timeout)
        if code != 0:
            tail = stderr.strip().splitlines()[-1] if stderr.strip() else "unknown ffmpeg error"
            raise TranscoderError(f"ffmpeg failed (rc={code}): {tail[:500]}")

    async def probe(self, path: Path) -> ClipInfo:
        """Duration, audio presence and frame size of a media file."""
        code, stdout, stderr = await _exec(
            [
                self.ffprobe, "-v", "error",
                "-show_entries", "format=duration:stream=codec_type,width,height",
                "-of", "json",
                str(path),
            ],
            timeout=60,
        )
        if code != 0:
            raise TranscoderError(f"ffprobe failed for {path.name}: {stderr.strip()[:300]}")
        try:
            data = json.loads(stdout)
            duration = float(data["format"]["duration"])
        except (ValueError, KeyError, TypeError) as e:
            raise TranscoderError(f"Could not read duration of {path.name}") from e
        streams = data.get("streams") or []
        video = next((s for s in streams if s.get("codec_type") == "video"), {})
        return ClipInfo(
            path=path,
            duration=duration,
            has_audio=any(s.get("codec_type") == "audio" for s in streams),
            width=int(video.get("width") or 0),
            height=int(video.get("height") or 0),
        )


# ---------------------------------------------------------------------------
# Process-wide lazy instance
# ---------------------------------------------------------------------------

_instance: Transcoder | None = None
_loading: asyncio.Future | None = None


async def _load(ffmpeg: str, ffprobe: str) -> Transcoder:
    ffmpeg_path = shutil.which(ffmpeg)
    ffprobe_path = shutil.which(ffprobe)
    if not ffmpeg_path or not ffprobe_path:
        raise TranscoderError(f"Transcoder not found on PATH ({ffmpeg}, {ffprobe})")
    code, stdout, stderr = await _exec([ffmpeg_path, "-version"], timeout=30)
    if code != 0:
        raise TranscoderError(f"Transcoder failed to initialise: {stderr.strip()[:200]}")
    version = stdout.splitlines()[0] if stdout else ""
    logger.info("Transcoder loaded: %s", version)
    return Transcoder(ffmpeg_path, ffprobe_path, version=version)


async def load_transcoder(ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> Transcoder:
    """Return the cached transcoder, loading it once.

    Concurrent callers await the same in-flight load. A failed or
    cancelled load is forgotten so the next call tries again; a caller
    cancelled while the load is still running leaves it for the others.
    """
    global _instance, _loading
    if _instance is not None:
        return _instance
    if _loading is None or _loading.cancelled():
        _loading = asyncio.ensure_future(_load(ffmpeg, ffprobe))
    loading = _loading
    try:
        transcoder = await asyncio.shield(loading)
    except BaseException:
        if _loading is loading and loading.done():
            _loading = None
        raise
    _instance = transcoder
    return transcoder


def reset_transcoder() -> None:
    """Drop the cached instance (tests, or after the binary changes)."""
    global _instance, _loading
    _instance = None
    _loading = None
