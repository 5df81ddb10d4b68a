"""Unit tests for the relay client and its fallback behavior."""

import asyncio
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

import httpx
import pytest

from conftest import TODAY
from coach_ai.client import build_payload, get_reply, regenerate_reply, sanitize_message
from coach_ai.config import ClientConfig
from coach_ai.metrics import aggregate
from coach_ai.models import CoachContext, CoachProfile, ConversationTurn
from coach_ai.synthesizer import no_data_message


class Relay:
    """Fake relay endpoint for httpx.MockTransport."""

    def __init__(self, status=200, body=None, raw=None):
        self.status = status
        self.body = {"reply": "Kör knäböj 3x5 idag."} if body is None else body
        self.raw = raw
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.raw is not None:
            return httpx.Response(self.status, text=self.raw)
        return httpx.Response(self.status, json=self.body)

    @property
    def sent(self):
        return json.loads(self.requests[-1].content)


def ask(relay, config, *args, **kwargs):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(relay)) as http_client:
            return await get_reply(*args, config=config, http_client=http_client, **kwargs)
    return asyncio.run(scenario())


@pytest.mark.unit
def test_sanitize_message():
    assert sanitize_message("  vad   ska\njag köra?  ") == "vad ska jag köra?"
    assert sanitize_message(None) == ""


# ==================== Fallback ====================

@pytest.mark.unit
def test_no_endpoint_always_falls_back(sample_context):
    reply = asyncio.run(get_reply("sv", "vad ska jag köra nästa pass?", sample_context, config=ClientConfig()))
    assert reply.source == "fallback"
    assert reply.text.startswith("Läge: 2 pass senaste 7 dagar")
    assert reply.workout_title == "Nästa pass: Bench Press"
    assert reply.basis == "Bygger på: 2 pass senaste 7 dagar, senaste pass 2024-05-07."


@pytest.mark.unit
def test_no_endpoint_with_no_data(empty_context):
    reply = asyncio.run(get_reply("en", "pb?", empty_context, config=ClientConfig()))
    assert reply.source == "fallback"
    assert reply.text == no_data_message("en")


@pytest.mark.unit
def test_empty_message_skips_network(client_config, sample_context):
    relay = Relay()
    reply = ask(relay, client_config, "en", "   ", sample_context)
    assert relay.requests == []
    assert reply.source == "fallback"
    assert reply.text == "Ask a question and I will help with a clear plan."
    assert reply.workout_title == "AI planned workout"


@pytest.mark.unit
def test_empty_reply_string_falls_back(client_config, sample_context):
    relay = Relay(body={"reply": ""})
    reply = ask(relay, client_config, "sv", "pb?", sample_context)
    assert len(relay.requests) == 1
    assert reply.source == "fallback"
    assert reply.text.startswith("Senaste PB:")


@pytest.mark.unit
@pytest.mark.parametrize("relay", [
    Relay(status=401, body={"error": "Unauthorized"}),
    Relay(status=200, raw="<html>oops</html>"),
    Relay(status=200, body={"reply": 42}),
    Relay(status=200, body=["reply"]),
])
def test_unusable_responses_fall_back(client_config, sample_context, relay):
    reply = ask(relay, client_config, "en", "next?", sample_context)
    assert reply.source == "fallback"
    assert reply.text


@pytest.mark.unit
def test_server_errors_are_retried_then_fall_back(client_config, sample_context):
    relay = Relay(status=503, body={"error": "busy"})
    reply = ask(relay, client_config, "en", "next?", sample_context)
    assert len(relay.requests) == 2
    assert reply.source == "fallback"


@pytest.mark.unit
def test_transport_error_falls_back(client_config, sample_context):
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    reply = ask(handler, client_config, "en", "volume?", sample_context)
    assert reply.source == "fallback"
    assert reply.text.startswith("7-day volume:")


@pytest.mark.unit
def test_timeout_falls_back(sample_context):
    async def handler(request):
        await asyncio.sleep(2)
        return httpx.Response(200, json={"reply": "late"})

    config = ClientConfig(endpoint="https://relay.test/ai-chat", timeout_seconds=0.05, retries=0)
    reply = ask(handler, config, "en", "next?", sample_context)
    assert reply.source == "fallback"


@pytest.mark.unit
@pytest.mark.parametrize("settings", [
    {"timeout_seconds": 0},
    {"retries": -1},
    {"backoff_seconds": -0.5},
])
def test_invalid_client_settings_fall_back_without_request(sample_context, settings):
    relay = Relay()
    config = ClientConfig(endpoint="https://relay.test/ai-chat", **settings)
    reply = ask(relay, config, "en", "next?", sample_context)
    assert relay.requests == []
    assert reply.source == "fallback"
    assert reply.text.startswith("Status: 2 sessions")


# ==================== Remote ====================

@pytest.mark.unit
def test_remote_reply_is_trimmed(client_config, sample_context):
    relay = Relay(body={"reply": "  Kör knäböj 3x5 idag.\n"})
    reply = ask(relay, client_config, "sv", "vad ska jag köra nästa pass?", sample_context)
    assert reply.source == "remote"
    assert reply.text == "Kör knäböj 3x5 idag."
    assert reply.workout_title == "Nästa pass: Bench Press"


@pytest.mark.unit
def test_request_headers(client_config, sample_context):
    relay = Relay()
    ask(relay, client_config, "sv", "pb?", sample_context, access_token="jwt-abc")
    request = relay.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://relay.test/ai-chat"
    assert request.headers["content-type"] == "application/json"
    assert request.headers["x-ai-chat-token"] == "client-secret"
    assert request.headers["authorization"] == "Bearer jwt-abc"


@pytest.mark.unit
def test_payload_shape(client_config, sample_context):
    relay = Relay()
    history = [{"role": "user", "text": f"fråga {i}"} for i in range(15)]
    history.append({"role": "assistant", "text": "Förra svaret"})
    profile = {"goal": "Bänka 100", "preferences": "mjuk ton", "schedule": "måndagar"}

    ask(relay, client_config, "sv", "  pb   nu? ", sample_context, history, profile)
    sent = relay.sent

    assert sent["message"] == "pb nu?"
    assert sent["lang"] == "sv"
    assert sent["context"]["todayISO"] == TODAY
    assert len(sent["context"]["workouts"]) == 4
    assert sent["contextSummary"]["sessions7"] == 2
    assert sent["contextSummary"]["topExercises"][0]["bestWeight"] == 85
    assert sent["coachProfile"] == {
        "goal": "Bänka 100", "focusExercises": "", "limitations": "", "schedule": "", "preferences": "",
    }
    assert len(sent["history"]) == 12
    assert sent["history"][-1] == {"role": "assistant", "text": "Förra svaret"}
    assert sent["responseStyle"] == {
        "tone": "supportive-human-coach",
        "structure": "question-first-adaptive",
        "maxLength": 650,
        "strictMode": "normal",
        "forceDirect": False,
        "reviseReason": None,
    }
    assert sent["previousAnswer"] is None
    assert sent["previousAssistantReply"] == "Förra svaret"
    assert sent["systemPrompt"].startswith("Du är en träningscoach.")


@pytest.mark.unit
def test_strict_payload(sample_context):
    ctx = CoachContext.model_validate(sample_context)
    summary = aggregate(ctx.workouts, ctx.weekly_goal, ctx.today_iso)
    payload = build_payload(
        "en", "pb?", ctx, summary, [ConversationTurn(role="user", text="hi")], CoachProfile(),
        strict_mode="strict", force_direct=True,
        revise_previous_answer="Old answer", revise_reason="missed",
    )
    assert payload["responseStyle"]["maxLength"] == 480
    assert payload["responseStyle"]["strictMode"] == "strict"
    assert payload["responseStyle"]["forceDirect"] is True
    assert payload["responseStyle"]["reviseReason"] == "missed"
    assert payload["responseStyle"]["tone"] == "direct-human-coach"
    assert payload["previousAnswer"] == "Old answer"
    assert payload["previousAssistantReply"] is None
    assert payload["coachProfile"] is None


# ==================== Regenerate ====================

@pytest.mark.unit
def test_regenerate_flags_near_duplicate(client_config, sample_context):
    relay = Relay(body={"reply": "Kör knäböj, 3x5 idag!"})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(relay)) as http_client:
            return await regenerate_reply(
                "sv", "vad ska jag köra?", sample_context, "kör knäböj 3x5 idag",
                config=client_config, http_client=http_client,
            )

    reply, is_duplicate = asyncio.run(scenario())
    assert is_duplicate is True
    assert reply.source == "remote"
    style = relay.sent["responseStyle"]
    assert style["strictMode"] == "strict"
    assert style["forceDirect"] is True
    assert relay.sent["previousAnswer"] == "kör knäböj 3x5 idag"


@pytest.mark.unit
def test_regenerate_accepts_different_answer(client_config, sample_context):
    relay = Relay(body={"reply": "Fokusera på marklyft med 3 set om 5."})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(relay)) as http_client:
            return await regenerate_reply(
                "sv", "vad ska jag köra?", sample_context, "Kör knäböj 3x5 idag.",
                config=client_config, http_client=http_client,
            )

    reply, is_duplicate = asyncio.run(scenario())
    assert is_duplicate is False
    assert reply.text == "Fokusera på marklyft med 3 set om 5."


@pytest.mark.unit
def test_slow_relay_within_configured_timeout_is_used(sample_context):
    """A real socket that answers after httpx's 5 s default still counts."""
    class SlowRelay(BaseHTTPRequestHandler):
        def do_POST(self):
            self.rfile.read(int(self.headers["Content-Length"]))
            time.sleep(5.5)
            body = json.dumps({"reply": "Långsamt men säkert."}).encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            pass

    server = HTTPServer(("127.0.0.1", 0), SlowRelay)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        config = ClientConfig(
            endpoint=f"http://127.0.0.1:{server.server_port}/ai-chat", timeout_seconds=10, retries=0,
        )

        async def scenario():
            async with httpx.AsyncClient(trust_env=False) as http_client:
                return await get_reply(
                    "sv", "vad ska jag köra?", sample_context, config=config, http_client=http_client,
                )

        reply = asyncio.run(scenario())
    finally:
        server.shutdown()
        server.server_close()

    assert reply.source == "remote"
    assert reply.text == "Långsamt men säkert."
