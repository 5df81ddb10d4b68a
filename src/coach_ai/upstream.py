"""Call to the hosted completion API (Responses endpoint)."""
import re
from typing import Any

import httpx

from .config import RelayConfig
from .prompt import Prompt


MAX_OUTPUT_TOKENS = 450
TEMPERATURE = 0.4
ERROR_BODY_LIMIT = 800

_GPT5_RE = re.compile(r"^gpt-5", re.IGNORECASE)


class UpstreamError(Exception):
    """The completion API failed or returned no text."""


def build_request_body(model: str, prompt: Prompt) -> dict[str, Any]:
    body = {
        "model": model,
        "max_output_tokens": MAX_OUTPUT_TOKENS,
        "input": [
            {"role": "system", "content": [{"type": "input_text", "text": prompt.instructions}]},
            {"role": "user", "content": [{"type": "input_text", "text": prompt.input}]},
        ],
    }
    # gpt-5 models reject a custom temperature
    if not _GPT5_RE.match(model):
        body["temperature"] = TEMPERATURE
    return body


def extract_text(data: Any) -> str:
    """`output_text` if present, else the joined `output_text` parts of message items."""
    if not isinstance(data, dict):
        return ""
    text = data.get("output_text")
    if isinstance(text, str) and text.strip():
        return text.strip()

    chunks = []
    for item in data.get("output") or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        content = item.get("content")
        if not isinstance(content, list):
            continue
        for part in content:
            if isinstance(part, dict) and part.get("type") == "output_text" and isinstance(part.get("text"), str):
                chunks.append(part["text"].strip())
    return "\n".join(chunk for chunk in chunks if chunk).strip()


async def call_completion(client: httpx.AsyncClient, config: RelayConfig, prompt: Prompt) -> str:
    """
    Send the prompt and return the reply text.

    Raises:
        UpstreamError: non-2xx status, undecodable body or no text
        httpx.HTTPError: transport failure
    """
    response = await client.post(
        config.responses_url,
        json=build_request_body(config.openai_model, prompt),
        headers={"Authorization": f"Bearer {config.openai_api_key}"},
        timeout=config.upstream_timeout_seconds,
    )
    if not response.is_success:
        raise UpstreamError(f"OpenAI error {response.status_code}: {response.text[:ERROR_BODY_LIMIT]}")
    try:
        data = response.json()
    except ValueError:
        raise UpstreamError("OpenAI returned a non-JSON body")

    text = extract_text(data)
    if not text:
        raise UpstreamError("No text in OpenAI response")
    return text
