"""Media stitching engine: download two parts, merge with the first strategy that works."""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

import httpx

from pev.errors import StitchError, TranscoderError
from pev.stitch.strategies import StitchStrategy, default_strategies
from pev.stitch.transcoder import Transcoder, load_transcoder

logger = logging.getLogger(__name__)

TranscoderLoader = Callable[[], Awaitable[Transcoder]]


@dataclass
class StitchResult:
    """Merged video plus the strategy that produced it."""

    data: bytes
    strategy: str
    duration_seconds: float
    path: Path | None = None
    media_type: str = "video/mp4"

    def discard(self) -> None:
        """Release the merged artifact (file and in-memory bytes)."""
        if self.path is not None:
            self.path.unlink(missing_ok=True)
            self.path = None
        self.data = b""


class StitchEngine:
    def __init__(
        self,
        client: httpx.AsyncClient,
        output_dir: Path,
        strategies: list[StitchStrategy] | None = None,
        loader: TranscoderLoader | None = None,
    ):
        self._client = client
        self._output_dir = Path(output_dir)
        self._strategies = strategies if strategies is not None else default_strategies()
        self._loader = loader or load_transcoder

    @property
    def strategy_names(self) -> list[str]:
        return [s.name for s in self._strategies]

    async def _download(self, url: str, dest: Path) -> Path:
        async with self._client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            with open(dest, "wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
        return dest

    async def stitch(self, url_a: str, url_b: str) -> StitchResult:
        """Merge two clips. Raises StitchError only when no strategy succeeds."""
        self._output_dir.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix="pev-stitch-"))
        try:
            try:
                path_a, path_b = await asyncio.gather(
                    self._download(url_a, work_dir / "part_a.mp4"),
                    self._download(url_b, work_dir / "part_b.mp4"),
                )
            except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
                raise StitchError(f"Could not download parts: {e}") from e

            try:
                transcoder = await self._loader()
            except TranscoderError as e:
                raise StitchError(
                    f"Transcoder unavailable: {e}",
                    {name: str(e) for name in self.strategy_names},
                ) from e

            async with transcoder.lock:
                return await self._run_strategies(transcoder, path_a, path_b)
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

    async def _run_strategies(self, transcoder: Transcoder, path_a: Path, path_b: Path) -> StitchResult:
        try:
            clip_a = await transcoder.probe(path_a)
            clip_b = await transcoder.probe(path_b)
        except TranscoderError as e:
            raise StitchError(f"Could not read parts: {e}") from e

        failures: dict[str, str] = {}
        for strategy in self._strategies:
            output = self._output_dir / f"stitched_{uuid.uuid4().hex[:12]}_{strategy.name}.mp4"
            try:
                plan = strategy.plan(clip_a, clip_b, output)
                await transcoder.run(plan.args)
                if not output.exists() or output.stat().st_size == 0:
                    raise TranscoderError(f"{strategy.name} produced no output")
            except TranscoderError as e:
                logger.warning("Stitch strategy %s failed: %s", strategy.name, e)
                failures[strategy.name] = str(e)
                output.unlink(missing_ok=True)
                continue
            logger.info("Stitched parts with %s (%.2fs)", strategy.name, plan.duration)
            return StitchResult(
                data=output.read_bytes(),
                strategy=strategy.name,
                duration_seconds=plan.duration,
                path=output,
            )
        raise StitchError("All stitching strategies failed", failures)
