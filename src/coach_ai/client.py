"""
Relay client: asks the remote coach and falls back to the local engine.

`get_reply` never raises. Every failure on the network path (missing
endpoint, timeout, transport error, bad status, malformed body) ends in the
same deterministic local answer, so the chat keeps working offline.
"""
import asyncio
import re
from typing import Any, Optional, Sequence

import httpx
from loguru import logger

from .config import ClientConfig
from .duplicates import is_near_duplicate
from .http import FetchTimeout, RequestAborted, fetch_with_timeout
from .intent import classify
from .metrics import aggregate
from .models import (
    CoachContext,
    CoachProfile,
    CoachReply,
    ConversationTurn,
    Intent,
    MetricsSummary,
    coerce_history,
    normalize_lang,
)
from .profile import contextualize_profile, detect_tone, sanitize_profile
from .synthesizer import basis_line, empty_message_reply, synthesize, workout_title


HISTORY_TURNS = 12
MAX_LENGTH_NORMAL = 650
MAX_LENGTH_STRICT = 480
RESPONSE_STRUCTURE = "question-first-adaptive"

SYSTEM_PROMPTS = {
    "sv": (
        "Du är en träningscoach. Svara mänskligt och personligt, men fortfarande konkret och "
        "datadrivet. Prioritera användarens faktiska träningsdata och progression."
    ),
    "en": (
        "You are a training coach. Respond naturally and personally, while staying concrete and "
        "data-driven. Prioritize the user's actual training data and progression."
    ),
}

_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_message(message: Any) -> str:
    if not isinstance(message, str):
        return ""
    return _WHITESPACE_RE.sub(" ", message).strip()


def _coerce_context(context: Any) -> CoachContext:
    if isinstance(context, CoachContext):
        return context
    if isinstance(context, dict):
        return CoachContext.model_validate(context)
    return CoachContext()


def _reply(lang: str, text: str, source: str, intent: Intent, summary: MetricsSummary) -> CoachReply:
    return CoachReply(
        text=text,
        source=source,
        workout_title=workout_title(lang, intent, summary),
        basis=basis_line(lang, summary),
    )


def fallback_reply(
    lang: str,
    message: str,
    summary: MetricsSummary,
    history: Optional[Sequence[ConversationTurn]] = None,
) -> CoachReply:
    """Local answer from the summary alone."""
    intent = classify(message, history)
    return _reply(lang, synthesize(lang, intent, summary, message), "fallback", intent, summary)


def build_headers(config: ClientConfig, access_token: Optional[str] = None) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if config.token:
        headers["x-ai-chat-token"] = config.token
    if access_token and access_token.strip():
        headers["Authorization"] = f"Bearer {access_token.strip()}"
    return headers


def build_payload(
    lang: str,
    message: str,
    context: CoachContext,
    summary: MetricsSummary,
    history: list[ConversationTurn],
    profile: Optional[CoachProfile],
    strict_mode: Optional[str] = None,
    force_direct: bool = False,
    revise_previous_answer: Optional[str] = None,
    revise_reason: Optional[str] = None,
) -> dict[str, Any]:
    """JSON body for the relay, camelCase throughout."""
    strict = strict_mode == "strict"
    tone = detect_tone(lang, profile)
    effective_profile = contextualize_profile(profile, message)
    previous_assistant = next((t.text for t in reversed(history) if t.role == "assistant"), None)

    return {
        "message": message,
        "lang": lang,
        "context": context.to_wire(),
        "contextSummary": summary.to_wire(),
        "coachProfile": effective_profile.to_wire() if effective_profile else None,
        "history": [turn.to_wire() for turn in history[-HISTORY_TURNS:]],
        "responseStyle": {
            "tone": "supportive-human-coach" if tone == "supportive" else "direct-human-coach",
            "structure": RESPONSE_STRUCTURE,
            "maxLength": MAX_LENGTH_STRICT if strict else MAX_LENGTH_NORMAL,
            "strictMode": "strict" if strict else "normal",
            "forceDirect": bool(force_direct),
            "reviseReason": revise_reason or None,
        },
        "previousAnswer": revise_previous_answer or None,
        "previousAssistantReply": previous_assistant,
        "systemPrompt": SYSTEM_PROMPTS[lang],
    }


async def _request_remote(
    config: ClientConfig,
    payload: dict,
    headers: dict,
    http_client: Optional[httpx.AsyncClient],
    abort: Optional[asyncio.Event],
) -> Optional[str]:
    """Reply text from the relay, or None when the answer is unusable."""
    options = dict(
        json=payload,
        headers=headers,
        timeout=config.timeout_seconds,
        retries=config.retries,
        retry_statuses=config.retry_statuses,
        backoff=config.backoff_seconds,
        abort=abort,
    )
    if http_client is not None:
        response = await fetch_with_timeout(http_client, config.endpoint, **options)
    else:
        async with httpx.AsyncClient() as client:
            response = await fetch_with_timeout(client, config.endpoint, **options)

    if not response.is_success:
        logger.info(f"Relay answered HTTP {response.status_code}, using local reply")
        return None
    try:
        data = response.json()
    except ValueError:
        logger.info("Relay answered with a non-JSON body, using local reply")
        return None
    reply = data.get("reply") if isinstance(data, dict) else None
    if not isinstance(reply, str) or not reply.strip():
        logger.info("Relay answer has no usable 'reply', using local reply")
        return None
    return reply.strip()


async def get_reply(
    lang: str,
    message: str,
    context: Any,
    history: Optional[Sequence[Any]] = None,
    profile: Optional[Any] = None,
    strict_mode: Optional[str] = None,
    force_direct: bool = False,
    revise_previous_answer: Optional[str] = None,
    revise_reason: Optional[str] = None,
    *,
    config: Optional[ClientConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    abort: Optional[asyncio.Event] = None,
    access_token: Optional[str] = None,
) -> CoachReply:
    """
    Answer a coaching question.

    Args:
        lang: 'sv' or 'en'; anything else is treated as 'sv'
        message: the user's question
        context: `CoachContext` or its wire dict
        history: prior turns, oldest first
        profile: coach profile; sanitized before use
        strict_mode: 'strict' for regenerate / missed-answer flows
        force_direct: ask the relay to answer without preamble
        revise_previous_answer: the answer being replaced
        revise_reason: why it is being replaced
        config: client settings (defaults to the environment)
        http_client: shared client; a short-lived one is created otherwise
        abort: setting it cancels the in-flight request
        access_token: session token forwarded as a bearer header

    Returns:
        A `CoachReply` with source 'remote' or 'fallback'.
    """
    lang = normalize_lang(lang)
    config = config or ClientConfig.from_env()
    cleaned = sanitize_message(message)
    safe_profile = sanitize_profile(profile) if profile is not None else None
    ctx = _coerce_context(context)
    summary = aggregate(ctx.workouts, ctx.weekly_goal, ctx.today_iso)

    if not cleaned:
        text = empty_message_reply(lang, detect_tone(lang, safe_profile))
        return _reply(lang, text, "fallback", Intent.SUMMARY, summary)

    turns = coerce_history(list(history or []))
    intent = classify(cleaned, turns)

    if not config.network_enabled:
        logger.info("No relay endpoint configured, using local reply")
        return fallback_reply(lang, cleaned, summary, turns)
    try:
        config.validate()
    except ValueError as e:
        logger.warning(f"Invalid relay client config ({e}), using local reply")
        return fallback_reply(lang, cleaned, summary, turns)

    payload = build_payload(
        lang, cleaned, ctx, summary, turns, safe_profile,
        strict_mode=strict_mode,
        force_direct=force_direct,
        revise_previous_answer=revise_previous_answer,
        revise_reason=revise_reason,
    )
    try:
        remote = await _request_remote(config, payload, build_headers(config, access_token), http_client, abort)
    except (RequestAborted, FetchTimeout, httpx.HTTPError) as e:
        logger.info(f"Relay request failed ({type(e).__name__}), using local reply")
        remote = None
    except Exception as e:
        logger.exception(f"Unexpected relay client error: {e}")
        remote = None

    if remote is None:
        return fallback_reply(lang, cleaned, summary, turns)
    return _reply(lang, remote, "remote", intent, summary)


async def regenerate_reply(
    lang: str,
    message: str,
    context: Any,
    previous_answer: str,
    history: Optional[Sequence[Any]] = None,
    profile: Optional[Any] = None,
    revise_reason: Optional[str] = None,
    **kwargs,
) -> tuple[CoachReply, bool]:
    """
    Ask again after the user flagged the previous answer as missing the point.

    Returns the new reply and whether it is a near-duplicate of
    `previous_answer`; callers should not show a duplicate and instead ask
    for a more specific follow-up.
    """
    reason = revise_reason or (
        "Föregående svar missade frågan." if normalize_lang(lang) == "sv"
        else "The previous answer missed the question."
    )
    reply = await get_reply(
        lang, message, context, history, profile,
        strict_mode="strict",
        force_direct=True,
        revise_previous_answer=previous_answer,
        revise_reason=reason,
        **kwargs,
    )
    return reply, is_near_duplicate(reply.text, previous_answer)
