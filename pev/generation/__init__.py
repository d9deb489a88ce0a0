"""Job submission, status polling and dual-part orchestration."""

from functools import partial

import httpx

from pev.config import Settings, get_settings
from pev.generation.orchestrator import (
    DualPartSession,
    SessionOutcome,
    SessionPhase,
    VideoOrchestrator,
)
from pev.generation.poller import JobPoller
from pev.generation.submitter import JobSubmitter, RetryState, parse_retry_after
from pev.jobs.store import get_job_state_store
from pev.notify import CompletionNotifier, NotificationBackend
from pev.stitch import EncodePolicy, StitchEngine, StitchTiming, default_strategies, load_transcoder


def get_submitter(client: httpx.AsyncClient, settings: Settings | None = None) -> JobSubmitter:
    settings = settings or get_settings()
    return JobSubmitter(
        client,
        settings.replicate_api_token,
        api_url=settings.replicate_api_url,
        secondary_credential=settings.openai_api_key,
        max_attempts=settings.submit_max_attempts,
        default_retry_after=settings.default_retry_after_seconds,
    )


def get_poller(client: httpx.AsyncClient, settings: Settings | None = None) -> JobPoller:
    settings = settings or get_settings()
    return JobPoller(client, settings.replicate_api_token, api_url=settings.replicate_api_url)


def get_stitch_engine(client: httpx.AsyncClient, settings: Settings | None = None) -> StitchEngine:
    settings = settings or get_settings()
    strategies = default_strategies(
        StitchTiming(settings.crossfade_seconds, settings.fade_out_seconds),
        EncodePolicy(crf=settings.video_crf, audio_bitrate=settings.audio_bitrate),
    )
    return StitchEngine(
        client,
        settings.output_dir,
        strategies=strategies,
        loader=partial(load_transcoder, settings.ffmpeg_binary, settings.ffprobe_binary),
    )


def build_orchestrator(
    client: httpx.AsyncClient,
    settings: Settings | None = None,
    notification_backend: NotificationBackend | None = None,
    **kwargs: object,
) -> VideoOrchestrator:
    """Wire an orchestrator from settings: Replicate clients, file-backed state, ffmpeg stitching."""
    settings = settings or get_settings()
    return VideoOrchestrator(
        get_submitter(client, settings),
        get_poller(client, settings),
        stitcher=get_stitch_engine(client, settings),
        store=get_job_state_store(),
        notifier=CompletionNotifier(notification_backend),
        poll_interval=settings.poll_interval_seconds,
        stagger=settings.stagger_seconds,
        **kwargs,
    )


__all__ = [
    "DualPartSession",
    "JobPoller",
    "JobSubmitter",
    "RetryState",
    "SessionOutcome",
    "SessionPhase",
    "VideoOrchestrator",
    "build_orchestrator",
    "get_poller",
    "get_stitch_engine",
    "get_submitter",
    "parse_retry_after",
]
