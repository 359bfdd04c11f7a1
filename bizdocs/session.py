"""
Persisted session state.

Keeps the API token and the signed-in user's id and email in a small JSON
file, under the same keys the web client keeps in localStorage.
"""
from __future__ import annotations
import json
from pathlib import Path
from typing import Optional
from loguru import logger

TOKEN_KEY = "med_api_token"
USER_ID_KEY = "med_api_user_id"
USER_EMAIL_KEY = "med_api_user_email"

SESSION_KEYS = (TOKEN_KEY, USER_ID_KEY, USER_EMAIL_KEY)


class SessionStore:
    """JSON-file backed session (token, user id, user email)."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: data[k] for k in SESSION_KEYS if data.get(k)}

    def save(
        self,
        token: str,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> None:
        data = {TOKEN_KEY: token, USER_ID_KEY: user_id, USER_EMAIL_KEY: user_email}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps({k: v for k, v in data.items() if v}, indent=2),
            encoding="utf-8",
        )
        logger.debug(f"Session saved to {self.path}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info("Session cleared")

    @property
    def token(self) -> Optional[str]:
        return self.load().get(TOKEN_KEY)

    @property
    def user_id(self) -> Optional[str]:
        return self.load().get(USER_ID_KEY)

    @property
    def user_email(self) -> Optional[str]:
        return self.load().get(USER_EMAIL_KEY)

    def has_valid_token_format(self) -> bool:
        """True when the stored token looks like a JWT (three dot-separated parts)."""
        token = self.token
        return bool(token) and len(token.split(".")) == 3
