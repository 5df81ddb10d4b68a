"""
Request authentication for the relay.

Three modes, picked from the relay config:
- jwt: `Authorization: Bearer <HS256 token>` with a `sub` claim and no expired `exp`
- token: `x-ai-chat-token` header equal to the shared secret
- open: every request is accepted
"""
import hmac
import re
from typing import Optional

from jose import JWTError, jwt

from .config import RelayConfig


ALGORITHM = "HS256"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    match = _BEARER_RE.match(authorization.strip())
    if not match:
        return None
    return match.group(1).strip() or None


def verify_jwt(token: str, secret: str) -> Optional[dict]:
    """Decode and validate a signed token. Returns None if invalid."""
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM], options={"verify_aud": False})
    except JWTError:
        return None


def is_authorized(config: RelayConfig, authorization: Optional[str], chat_token: Optional[str]) -> bool:
    mode = config.auth_mode
    if mode == "jwt":
        bearer = get_bearer_token(authorization)
        if not bearer:
            return False
        claims = verify_jwt(bearer, config.jwt_secret)
        return bool(claims and claims.get("sub"))
    if mode == "token":
        if not chat_token:
            return False
        return hmac.compare_digest(chat_token.encode(), config.chat_token.encode())
    return True
