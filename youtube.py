"""YouTube URL parsing and transcript retrieval."""

import html
import os
import re
import time
from typing import Callable, Optional, Sequence
from urllib.parse import parse_qs, urlparse

import requests
from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    RequestBlocked,
    TranscriptsDisabled,
    VideoUnavailable,
    YouTubeRequestFailed,
    YouTubeTranscriptApi,
)
from youtube_transcript_api.proxies import GenericProxyConfig

import ai

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_PATH_ID_RE = re.compile(r"^/(embed|v|shorts|live)/([A-Za-z0-9_-]{11})")
_YOUTUBE_HOSTS = {"youtube.com", "m.youtube.com"}

DEFAULT_MAX_RETRIES = 3
RETRY_BACKOFF_S = 1.0
RETRY_MAX_BACKOFF_S = 8.0

NO_TRANSCRIPT_MESSAGE = (
    "No transcript available for this video. The video may not have captions enabled."
)

_TRANSIENT_ERRORS = (RequestBlocked, YouTubeRequestFailed, requests.RequestException)


class TranscriptError(RuntimeError):
    """The transcript could not be retrieved; the message is user-facing."""


def extract_video_id(url: str) -> Optional[str]:
    """Return the 11-character video id from a YouTube URL or bare id."""
    trimmed = url.strip()
    if _VIDEO_ID_RE.match(trimmed):
        return trimmed

    parsed = urlparse(trimmed)
    if parsed.scheme not in ("http", "https"):
        return None
    hostname = (parsed.hostname or "").lower()
    if hostname.startswith("www."):
        hostname = hostname[len("www.") :]

    if hostname in _YOUTUBE_HOSTS and parsed.path == "/watch":
        values = parse_qs(parsed.query).get("v")
        return values[0] if values else None

    if hostname == "youtu.be":
        return parsed.path[1:] or None

    if hostname in _YOUTUBE_HOSTS:
        match = _PATH_ID_RE.match(parsed.path)
        if match:
            return match.group(2)

    return None


def _configured_retries() -> int:
    raw = os.getenv("YTMINDMAP_TRANSCRIPT_RETRIES")
    if not raw:
        return DEFAULT_MAX_RETRIES
    try:
        return max(0, int(raw))
    except ValueError:
        return DEFAULT_MAX_RETRIES


def _client(proxy_url: Optional[str]) -> YouTubeTranscriptApi:
    if proxy_url:
        return YouTubeTranscriptApi(
            proxy_config=GenericProxyConfig(http_url=proxy_url, https_url=proxy_url)
        )
    return YouTubeTranscriptApi()


def _clean_transcript(texts: Sequence[str]) -> str:
    joined = " ".join(texts).replace("\n", " ")
    return html.unescape(" ".join(joined.split()))


def fetch_transcript(
    video_id: str,
    *,
    languages: Sequence[str] = ("en",),
    max_retries: Optional[int] = None,
    proxy_url: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Fetch the transcript of ``video_id`` as one whitespace-normalised string.

    Blocked or failed requests are retried with exponential backoff; missing
    captions and unavailable videos fail at once.
    """
    retries = _configured_retries() if max_retries is None else max_retries
    proxy = proxy_url if proxy_url is not None else os.getenv("YTMINDMAP_PROXY_URL")
    client = _client(proxy)
    target = f"transcript:{video_id}"
    last_err: Optional[Exception] = None

    for attempt in range(retries + 1):
        try:
            fetched = client.fetch(video_id, languages=list(languages))
        except (TranscriptsDisabled, NoTranscriptFound) as exc:
            ai.log_connection_event("FAIL", target, type(exc).__name__)
            raise TranscriptError(NO_TRANSCRIPT_MESSAGE) from exc
        except VideoUnavailable as exc:
            ai.log_connection_event("FAIL", target, type(exc).__name__)
            raise TranscriptError("This video is unavailable.") from exc
        except _TRANSIENT_ERRORS as exc:
            last_err = exc
        except CouldNotRetrieveTranscript as exc:
            ai.log_connection_event("FAIL", target, type(exc).__name__)
            raise TranscriptError("Could not retrieve a transcript for this video.") from exc
        else:
            ai.log_connection_event("SUCCESS", target)
            text = _clean_transcript([snippet.text for snippet in fetched])
            if not text:
                raise TranscriptError("Transcript is empty.")
            return text

        if attempt >= retries:
            break
        delay = min(RETRY_MAX_BACKOFF_S, RETRY_BACKOFF_S * (2**attempt))
        ai.log_connection_event(
            "RETRY", target, f"attempt {attempt + 1}: {type(last_err).__name__}, sleeping {delay:.1f}s"
        )
        sleep(delay)

    ai.log_connection_event("FAIL", target, f"gave up after {retries + 1} attempts")
    raise TranscriptError(
        "Could not reach YouTube to fetch the transcript. Please try again later."
    ) from last_err
