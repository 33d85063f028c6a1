import json
import os
import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib import error, request

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
OFFLINE_MODEL = "No AI (offline dummy output)"
_NETWORK_MODELS = [
    "openai/gpt-5.2",
    "openai/gpt-oss-20b:free",
    "google/gemini-2.0-flash-exp:free",
    "google/gemma-3-27b-it:free",
    "meta-llama/llama-3.3-70b-instruct:free",
    "mistralai/mistral-small-3.2-24b-instruct:free",
    "qwen/qwen3-14b:free",
    "z-ai/glm-4.5-air:free",
]
AVAILABLE_MODELS = [OFFLINE_MODEL, *_NETWORK_MODELS]
DEFAULT_MODEL = _NETWORK_MODELS[0]
_PROMPT_LOG_PATH = Path("prompt.log")
_prompt_log_lock = threading.Lock()
_CONNECTION_LOG_PATH = Path("connection.log")
_connection_log_lock = threading.Lock()

SYSTEM_PROMPT = """You are an expert at analyzing video transcripts and creating structured hierarchical summaries as markdown outlines for mindmap visualization.

Given a YouTube video transcript, create a structured markdown outline that captures the key topics, subtopics, and important details.

Rules:
- Use markdown headings (# ## ### ####) to create hierarchy
- The top-level # heading should be the main topic/title of the video
- Use 2-4 levels of depth depending on content complexity
- Use bullet points (- ) for leaf-level details under headings
- Keep each bullet point concise (under 10 words)
- Capture 5-10 main topics from the video
- Include key facts, numbers, names, and takeaways
- Do NOT include filler, repetition, or conversational artifacts like "um", "uh", "you know"
- Do NOT add any introduction, explanation, or commentary
- Output ONLY the markdown outline, nothing else"""

_FENCE_RE = re.compile(r"^\s*```[\w-]*\s*\n(.*?)\n\s*```\s*$", re.DOTALL)
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_DUMMY_SECTIONS = 5
_DUMMY_BULLETS = 4
_DUMMY_WORDS = 8


class GenerationError(RuntimeError):
    """The outline could not be generated."""


def reset_prompt_log() -> None:
    with _prompt_log_lock:
        _PROMPT_LOG_PATH.write_text("", encoding="utf-8")


def reset_connection_log() -> None:
    with _connection_log_lock:
        _CONNECTION_LOG_PATH.write_text("", encoding="utf-8")


def _log_prompt_exchange(prompt: str, response_raw: str | None, error: str | None) -> None:
    prompt_text = prompt.strip() or "<empty prompt>"
    response_text = (response_raw or "").strip()
    prompt_timestamp = datetime.now().isoformat(timespec="seconds")
    with _prompt_log_lock:
        size = _PROMPT_LOG_PATH.stat().st_size if _PROMPT_LOG_PATH.exists() else 0
        with _PROMPT_LOG_PATH.open("a", encoding="utf-8") as log:
            if size:
                log.write("=====\n")
            log.write(f"ytmindmap [{prompt_timestamp}] Prompt:\n")
            log.write("------------------------------------------------------------\n")
            log.write(f"{prompt_text}\n")
            log.write("============================================================\n")
            response_timestamp = datetime.now().isoformat(timespec="seconds")
            log.write(f"{get_active_model()} [{response_timestamp}] Response:\n")
            log.write("------------------------------------------------------------\n")
            if error:
                log.write(f"<error> {error}\n")
            elif response_text:
                log.write(f"{response_text}\n")
            else:
                log.write("<empty>\n")
            log.write("============================================================\n")


def log_connection_event(status: str, target: str, detail: str | None = None) -> None:
    timestamp = datetime.now().isoformat(timespec="seconds")
    message = detail.strip() if detail else ""
    line = f"{timestamp}\t{status.upper()}\t{target}"
    if message:
        line = f"{line}\t{message}"
    with _connection_log_lock:
        with _CONNECTION_LOG_PATH.open("a", encoding="utf-8") as log:
            log.write(line + "\n")


def get_active_model() -> str:
    return os.getenv("OPENROUTER_MODEL", DEFAULT_MODEL)


def set_active_model(model: str) -> None:
    os.environ["OPENROUTER_MODEL"] = model


def uses_network() -> bool:
    return bool(os.getenv("OPENROUTER_API_KEY")) and get_active_model() != OFFLINE_MODEL


def _post_openrouter(
    model: str, messages: list[dict]
) -> tuple[Optional[dict], Optional[str], Optional[str]]:
    if model == OFFLINE_MODEL:
        return None, "offline model", None

    api_key = os.getenv("OPENROUTER_API_KEY")
    if not api_key:
        return None, "missing api key", None

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "X-Title": "ytmindmap",
    }
    body = {
        "model": model,
        "messages": messages,
    }

    data = json.dumps(body).encode("utf-8")
    http_request = request.Request(
        OPENROUTER_API_URL,
        data=data,
        headers=headers,
        method="POST",
    )
    raw_payload: Optional[str] = None
    try:
        with request.urlopen(http_request, timeout=60) as response:
            status = getattr(response, "status", 200)
            if not 200 <= status < 300:
                return None, f"HTTP {status}", None
            raw_payload = response.read().decode("utf-8")
    except (error.URLError, error.HTTPError, TimeoutError) as exc:
        return None, str(exc), raw_payload

    try:
        parsed = json.loads(raw_payload or "")
    except json.JSONDecodeError as exc:
        return None, f"invalid JSON: {exc}", raw_payload
    return parsed, None, raw_payload


def _extract_text(response: dict) -> Optional[str]:
    try:
        choices = response["choices"]
        if not choices:
            return None
        message = choices[0]["message"]
        return message.get("content")
    except (KeyError, TypeError):
        return None


def _call_openrouter(system_prompt: str, prompt: str) -> tuple[Optional[str], Optional[str]]:
    model = get_active_model()
    response_payload, error, raw_payload = _post_openrouter(
        model,
        [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ],
    )
    if error:
        log_connection_event("FAIL", model, error)
    else:
        log_connection_event("SUCCESS", model)
    raw_for_log = raw_payload
    if raw_for_log is None and response_payload is not None:
        raw_for_log = json.dumps(response_payload, ensure_ascii=False)
    _log_prompt_exchange(prompt, raw_for_log, error)
    if not response_payload:
        return None, error
    return _extract_text(response_payload), None


def strip_code_fences(text: str) -> str:
    """Drop a Markdown code fence wrapped around the whole answer."""
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def _short_label(sentence: str) -> str:
    words = sentence.strip().rstrip(".!?").split()
    label = " ".join(words[:_DUMMY_WORDS])
    return label if len(words) <= _DUMMY_WORDS else f"{label}…"


def _dummy_outline_markdown(transcript: str) -> str:
    sentences = [s for s in _SENTENCE_RE.split(" ".join(transcript.split())) if s.strip()]
    if not sentences:
        sentences = ["Transcript is empty"]
    per_section = max(1, -(-len(sentences) // _DUMMY_SECTIONS))
    lines: list[str] = ["# Video outline"]
    for section_index in range(0, len(sentences), per_section):
        chunk = sentences[section_index : section_index + per_section]
        lines.append("")
        lines.append(f"## Part {section_index // per_section + 1}: {_short_label(chunk[0])}")
        for sentence in chunk[:_DUMMY_BULLETS]:
            lines.append(f"- {_short_label(sentence)}")
    return "\n".join(lines) + "\n"


def generate_mindmap_markdown(transcript: str) -> str:
    """Ask the active model for a Markdown outline of ``transcript``."""
    if not uses_network():
        return _dummy_outline_markdown(transcript)

    prompt = (
        "Create a structured markdown mindmap outline from this video transcript:\n\n"
        f"{transcript}"
    )
    result, failure = _call_openrouter(SYSTEM_PROMPT, prompt)
    if failure:
        raise GenerationError(f"Failed to generate mindmap ({failure}). Please try again.")
    cleaned = strip_code_fences(result or "")
    if not cleaned:
        raise GenerationError("The model returned an empty outline. Please try again.")
    return f"{cleaned}\n"
