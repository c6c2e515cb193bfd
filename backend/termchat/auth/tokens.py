"""In-memory join-token table.

Tokens are minted by ``POST /auth`` and presented as the ``token`` query
parameter when a client opens the chat WebSocket. They do not expire and may
be reused for several connections during the process lifetime.
"""
import logging
import secrets
import time
from typing import Dict, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# 18 random bytes -> 36 hex characters
TOKEN_BYTES = 18


class JoinToken(BaseModel):
    """A join token and the context that requested it.

    Attributes:
        token: Opaque random hex string.
        pc_name: Machine name sent by the launcher.
        username: Account that requested the token, when accounts are enabled.
        issued_at: Unix timestamp of issuance.
    """
    token: str
    pc_name: str
    username: Optional[str] = None
    issued_at: float = Field(default_factory=time.time)


class TokenStore:
    """Maps join tokens to the context that requested them."""

    def __init__(self) -> None:
        self._tokens: Dict[str, JoinToken] = {}

    def issue(self, pc_name: str, username: Optional[str] = None) -> JoinToken:
        entry = JoinToken(
            token=secrets.token_hex(TOKEN_BYTES),
            pc_name=pc_name,
            username=username,
        )
        self._tokens[entry.token] = entry
        logger.info(f"[Gate] Issued join token for pc={pc_name!r} user={username!r}")
        return entry

    def lookup(self, token: Optional[str]) -> Optional[JoinToken]:
        """Return the token's entry, or None if it was never issued."""
        if not token:
            return None
        return self._tokens.get(token)

    def __len__(self) -> int:
        return len(self._tokens)


_token_store: Optional[TokenStore] = None


def get_token_store() -> TokenStore:
    global _token_store
    if _token_store is None:
        _token_store = TokenStore()
    return _token_store


def reset_token_store() -> None:
    global _token_store
    _token_store = None
