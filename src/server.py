"""
Coach AI Relay Server - FastAPI service in front of the completion API
Authenticates, rate-limits and forwards coach chat requests
"""
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from coach_ai.auth import is_authorized
from coach_ai.config import RelayConfig
from coach_ai.prompt import build_prompt
from coach_ai.ratelimit import RateLimiter
from coach_ai.upstream import UpstreamError, call_completion


DEFAULT_PORT = 8787


class RelayError(Exception):
    """Request failure reported to the caller as a JSON error body."""

    def __init__(self, status: int, error: str, details: Optional[str] = None):
        self.status = status
        self.error = error
        self.details = details
        super().__init__(error)


# Pydantic models
class ChatResponse(BaseModel):
    reply: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def create_app(
    config: Optional[RelayConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the relay app.

    Args:
        config: relay settings; read from the environment at startup when omitted
        transport: httpx transport for the upstream client (tests use a mock)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        relay_config = config or RelayConfig.from_env()
        # Refuses to start without an API key
        relay_config.validate()
        app.state.config = relay_config
        app.state.rate_limiter = RateLimiter.from_config(relay_config)
        app.state.http = httpx.AsyncClient(transport=transport)
        logger.info(
            f"Relay ready: model={relay_config.openai_model}, auth={relay_config.auth_mode}, "
            f"rate_limit={relay_config.rate_limit_max}/{relay_config.rate_limit_window_ms}ms"
        )
        yield
        await app.state.http.aclose()

    app = FastAPI(title="Coach AI Relay Server", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=(config.cors_origins if config else ["*"]),
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "x-ai-chat-token"],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        body = ErrorResponse(error=exc.error, details=exc.details)
        return JSONResponse(status_code=exc.status, content=body.model_dump(exclude_none=True))

    @app.post("/ai-chat", response_model=ChatResponse)
    async def ai_chat(request: Request):
        """Answer one chat payload through the completion API."""
        relay_config: RelayConfig = request.app.state.config

        if not is_authorized(
            relay_config,
            request.headers.get("authorization"),
            request.headers.get("x-ai-chat-token"),
        ):
            logger.info(f"Rejected chat request ({relay_config.auth_mode} auth)")
            raise RelayError(401, "Unauthorized")

        client_ip = get_client_ip(request)
        if await run_in_threadpool(request.app.state.rate_limiter.is_limited, client_ip):
            raise RelayError(429, "Too many requests")

        try:
            payload = await request.json()
        except ValueError:
            raise RelayError(400, "Invalid JSON body")
        message = payload.get("message") if isinstance(payload, dict) else None
        if not isinstance(message, str) or not message.strip():
            raise RelayError(400, "message is required")

        try:
            reply = await call_completion(request.app.state.http, relay_config, build_prompt(payload))
        except (UpstreamError, httpx.HTTPError) as e:
            logger.error(f"Upstream completion failed: {type(e).__name__}: {e}")
            raise RelayError(500, "AI request failed", str(e) or type(e).__name__)

        return ChatResponse(reply=reply)

    return app


app = create_app()


def main():
    """Entry point for running the relay."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="Coach AI Relay Server")
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Interface to bind (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})"
    )
    args = parser.parse_args()

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
