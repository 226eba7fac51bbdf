"""Persist the Google token pair as a private YAML file."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import yaml
from loguru import logger

from .token_client import OAuthToken


class TokenStore:
    """Load/save an :class:`OAuthToken`; the file is readable by its owner only."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> OAuthToken | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load token from {self.path}: {e}")
            return None
        token = OAuthToken.from_dict(data)
        return token if token.has_refresh_token else None

    def save(self, token: OAuthToken) -> None:
        """Write the token, or delete the file when the token was cleared."""
        if not token.has_refresh_token:
            self.clear()
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(token.to_dict(), f, default_flow_style=False)
        os.chmod(self.path, stat.S_IRUSR | stat.S_IWUSR)
        logger.debug(f"Token saved to {self.path}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug(f"Token removed from {self.path}")
