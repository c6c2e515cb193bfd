"""Gate router: accounts and join-token issuance.

Endpoints:
    POST /register - Create an account {username, password}
    POST /login    - Exchange a password for a long-lived credential token
    POST /auth     - Mint a join token for the chat WebSocket {pcName}

Errors are returned as ``{"error": "..."}`` with status 400 (bad body),
401 (bad credentials) or 409 (username taken).
"""
import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr, ValidationError

from termchat.config import AppSettings, get_config

from .service import (
    MAX_PASSWORD_BYTES,
    USERNAME_RE,
    AccountExistsError,
    AccountService,
    InvalidCredentialsError,
    get_account_service,
)
from .tokens import TokenStore, get_token_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["gate"])


class CredentialsRequest(BaseModel):
    """Request body for /register and /login."""
    username: str
    password: str


class JoinTokenRequest(BaseModel):
    """Request body for /auth. Arrays and objects are rejected as pcName."""
    pc_name: Optional[Union[StrictStr, StrictBool, StrictInt, StrictFloat]] = Field(
        None, alias="pcName"
    )


def _pc_name_text(value: Union[str, bool, int, float, None]) -> str:
    """Render a JSON scalar the way the launcher sent it (``true``, ``3``, ``1.5``)."""
    if not value:
        return ""
    if value is True:
        return "true"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def _parse_credentials(request: Request) -> Optional[CredentialsRequest]:
    try:
        body = CredentialsRequest.model_validate_json(await request.body())
    except ValidationError:
        return None
    if not body.username or not body.password:
        return None
    return body


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@router.post("/register")
async def register(
    request: Request,
    accounts: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Create an account.

    Returns:
        200 ``{ok: true}``; 400 if the body is missing fields, the username
        is not 1-20 chars of ``[A-Za-z0-9_-]`` or the password is too long;
        409 if the username exists.
    """
    body = await _parse_credentials(request)
    if body is None:
        return _error("username and password required", 400)
    if not USERNAME_RE.match(body.username):
        return _error("username must be 1-20 characters of A-Z, a-z, 0-9, _ or -", 400)
    if len(body.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return _error(f"password must be at most {MAX_PASSWORD_BYTES} bytes", 400)

    try:
        await accounts.register(body.username, body.password)
    except AccountExistsError:
        return _error("username already exists", 409)
    return JSONResponse({"ok": True})


@router.post("/login")
async def login(
    request: Request,
    accounts: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Verify a password and return ``{token}`` (credential token)."""
    body = await _parse_credentials(request)
    if body is None:
        return _error("username and password required", 400)

    try:
        token = await accounts.login(body.username, body.password)
    except InvalidCredentialsError:
        return _error("invalid username or password", 401)
    logger.info(f"[Gate] {body.username} logged in")
    return JSONResponse({"token": token})


@router.post("/auth")
async def issue_join_token(
    request: Request,
    authorization: Optional[str] = Header(None),
    config: AppSettings = Depends(get_config),
    accounts: AccountService = Depends(get_account_service),
    tokens: TokenStore = Depends(get_token_store),
) -> JSONResponse:
    """Mint a join token for the chat WebSocket.

    When ``gate.require_account`` is on, the caller must send
    ``Authorization: Bearer <credential token>`` from /login.

    Returns:
        200 ``{token}``; 400 for a malformed body or empty pcName;
        401 for a missing or invalid credential token.
    """
    username = None
    if config.gate.require_account:
        credential = _bearer_token(authorization)
        username = accounts.authenticate(credential) if credential else None
        if username is None:
            return _error("valid bearer token required", 401)

    try:
        body = JoinTokenRequest.model_validate_json(await request.body() or b"{}")
    except ValidationError:
        return _error("Invalid request", 400)

    pc_name = _pc_name_text(body.pc_name)[: config.gate.max_pc_name_length]
    if not pc_name:
        return _error("pcName required", 400)

    entry = tokens.issue(pc_name, username=username)
    return JSONResponse({"token": entry.token})
