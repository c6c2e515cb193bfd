"""Account store for the gate.

Passwords are hashed with bcrypt. A successful login returns a long-lived
credential token (HS256 JWT, ``sub`` = username) which ``POST /auth`` accepts
as a bearer token before minting a join token.

Accounts live in memory only and are lost on restart.
"""
import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import bcrypt
import jwt

from termchat.config import get_config

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,20}$")

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


class AccountError(Exception):
    """Base class for account store errors."""


class AccountExistsError(AccountError):
    """Username is already registered."""


class InvalidCredentialsError(AccountError):
    """Unknown username or wrong password."""


def hash_password(password: str, rounds: int = 10) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


class AccountService:
    """Registers accounts, verifies passwords and signs credential tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        token_expire_days: int = 30,
        bcrypt_rounds: int = 10,
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._token_lifetime = timedelta(days=token_expire_days)
        self._bcrypt_rounds = bcrypt_rounds
        # username -> bcrypt hash
        self._accounts: Dict[str, str] = {}

    async def register(self, username: str, password: str) -> None:
        """Create an account.

        The bcrypt hash runs in the default executor. The name is checked
        again after hashing since another registration may have won meanwhile.

        Raises:
            AccountExistsError: If the username is taken.
        """
        if username in self._accounts:
            raise AccountExistsError(username)
        hashed = await asyncio.get_event_loop().run_in_executor(
            None, hash_password, password, self._bcrypt_rounds
        )
        if username in self._accounts:
            raise AccountExistsError(username)
        self._accounts[username] = hashed
        logger.info(f"[Gate] Registered account {username!r}")

    async def login(self, username: str, password: str) -> str:
        """Check a password and return a fresh credential token.

        Raises:
            InvalidCredentialsError: Unknown user or wrong password.
        """
        hashed = self._accounts.get(username)
        valid = hashed is not None and await asyncio.get_event_loop().run_in_executor(
            None, verify_password, password, hashed
        )
        if not valid:
            logger.warning(f"[Gate] Failed login for {username!r}")
            raise InvalidCredentialsError(username)
        return self.issue_credential(username)

    def issue_credential(self, username: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {"sub": username, "iat": now, "exp": now + self._token_lifetime}
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def authenticate(self, token: str) -> Optional[str]:
        """Resolve a credential token to its username.

        Returns:
            The username, or None if the token is invalid, expired or names an
            account that no longer exists.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            logger.info("[Gate] Credential token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.info(f"[Gate] Invalid credential token: {e}")
            return None

        username = payload.get("sub")
        if not username or username not in self._accounts:
            return None
        return username


_account_service: Optional[AccountService] = None


def get_account_service() -> AccountService:
    global _account_service
    if _account_service is None:
        config = get_config()
        _account_service = AccountService(
            secret_key=config.secrets.jwt.secret_key,
            algorithm=config.secrets.jwt.algorithm,
            token_expire_days=config.gate.token_expire_days,
        )
    return _account_service


def set_account_service(service: AccountService) -> None:
    global _account_service
    _account_service = service


def reset_account_service() -> None:
    global _account_service
    _account_service = None
