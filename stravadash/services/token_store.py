"""Persistent storage for Strava OAuth tokens."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

import aiofiles
import aiofiles.os

from stravadash.models.strava import StravaTokens

logger = logging.getLogger(__name__)

TOKEN_KEYS = ("access_token", "refresh_token", "expires_at")


class TokenStore:
    """JSON file holding the access token, refresh token and expiry.

    The three entries live in one record that is replaced atomically, so a
    crash while saving leaves either the old or the new credential, never a
    mix of both.
    """

    def __init__(self, token_file: str):
        self.token_file = Path(token_file)

    def load(self) -> Dict[str, Any]:
        """Read stored entries. Missing or unreadable files give an empty dict."""
        if not self.token_file.exists():
            return {}
        try:
            with open(self.token_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Error loading tokens from {self.token_file}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed token file {self.token_file}")
            return {}
        entries = {key: data[key] for key in TOKEN_KEYS if data.get(key) is not None}
        if "expires_at" in entries:
            try:
                entries["expires_at"] = int(entries["expires_at"])
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid expires_at in {self.token_file}")
                del entries["expires_at"]
        return entries

    async def save(self, tokens: StravaTokens) -> None:
        """Write the tokens to a temp file then rename it over the record."""
        self.token_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.token_file.with_name(self.token_file.name + ".tmp")
        payload = json.dumps({
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "expires_at": tokens.expires_at
        }, indent=4)
        try:
            async with aiofiles.open(tmp_file, "w", encoding="utf-8") as f:
                await f.write(payload)
            await aiofiles.os.replace(tmp_file, self.token_file)
        except OSError as e:
            logger.error(f"Error saving tokens to {self.token_file}: {e}")

    async def clear(self) -> None:
        """Remove the stored tokens."""
        if os.path.exists(self.token_file):
            await aiofiles.os.remove(self.token_file)
            logger.info(f"Removed stored tokens {self.token_file}")
