"""
Download package: fetch, convert and retry pending recordings.

Modules:
    scheduler: Worker pool dispatching entries and collecting results
    retry: Retry state machine and backoff policy
    rate_limit: Global minimum interval between requests
    converter: ffmpeg conversion to 16-bit PCM WAV and batch conversion
"""

from .converter import Converter, FfmpegConverter, convert_directory
from .rate_limit import RateLimiter
from .retry import (
    Abandoned,
    Attempting,
    Outcome,
    Pending,
    RetryPolicy,
    Succeeded,
    is_terminal,
    transition,
)
from .scheduler import (
    DownloadError,
    DownloadReport,
    DownloadResult,
    DownloadScheduler,
    SchedulerState,
)

__all__ = [
    "Converter",
    "FfmpegConverter",
    "convert_directory",
    "RateLimiter",
    "Abandoned",
    "Attempting",
    "Outcome",
    "Pending",
    "RetryPolicy",
    "Succeeded",
    "is_terminal",
    "transition",
    "DownloadError",
    "DownloadReport",
    "DownloadResult",
    "DownloadScheduler",
    "SchedulerState",
]
