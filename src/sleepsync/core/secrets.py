"""
Dependency-injected secrets management.

Secrets are resolved through a chain of providers. Each provider implements
the SecretProvider protocol. The SecretsManager checks providers in order,
returning the first non-None result.

Usage:
    from sleepsync.core.secrets import SecretsManager, EnvProvider, YamlFileProvider

    manager = SecretsManager(providers=[
        EnvProvider("SLEEPSYNC_"),
        YamlFileProvider("~/.sleepsync/secrets.yaml"),
    ])

    client_id = manager.require("google.client_id")
"""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml
from loguru import logger

from sleepsync.core.exceptions import SecretNotFoundError

SECRETS_TEMPLATE: dict[str, Any] = {
    "google": {
        "client_id": "",
        "client_secret": "",
    },
}


@runtime_checkable
class SecretProvider(Protocol):
    """Interface for secret providers."""

    def get(self, key_path: str) -> str | None:
        """Return a secret value for the given dot-notation key, or None."""
        ...

    def get_namespace(self, namespace: str) -> dict[str, Any]:
        """Return all secrets under a namespace as a flat dict."""
        ...


class EnvProvider:
    """
    Read secrets from environment variables.

    Maps dot-notation keys to env vars:
        "google.client_id" -> PREFIX_GOOGLE__CLIENT_ID
    """

    def __init__(self, prefix: str = "SLEEPSYNC_"):
        self.prefix = prefix

    def get(self, key_path: str) -> str | None:
        env_key = self.prefix + key_path.replace(".", "__").upper()
        return os.environ.get(env_key) or None

    def get_namespace(self, namespace: str) -> dict[str, Any]:
        result = {}
        prefix = self.prefix + namespace.upper() + "__"
        for env_key, env_value in os.environ.items():
            if env_key.startswith(prefix):
                result[env_key[len(prefix) :].lower()] = env_value
        return result


class YamlFileProvider:
    """
    Read secrets from a YAML file.

    Expected format:
        google:
          client_id: "123.apps.googleusercontent.com"
          client_secret: "xyz789"
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()
        self._data: dict | None = None

    def _load(self) -> dict:
        if self._data is None:
            if self._path.exists():
                try:
                    with open(self._path) as f:
                        self._data = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning(f"Could not load secrets from {self._path}: {e}")
                    self._data = {}
            else:
                self._data = {}
        return self._data

    def get(self, key_path: str) -> str | None:
        current: Any = self._load()
        for part in key_path.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        # Empty strings in the file are unset placeholders.
        return str(current) if current not in (None, "") else None

    def get_namespace(self, namespace: str) -> dict[str, Any]:
        section = self._load().get(namespace, {})
        return dict(section) if isinstance(section, dict) else {}

    def reload(self) -> None:
        """Force reload from disk on next access."""
        self._data = None


def write_secrets_file(path: str | Path, data: dict[str, Any] | None = None) -> Path:
    """Write a secrets YAML readable only by the owner."""
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w") as f:
        yaml.dump(data if data is not None else SECRETS_TEMPLATE, f, default_flow_style=False)
    os.chmod(target, stat.S_IRUSR | stat.S_IWUSR)
    return target


class SecretsManager:
    """
    Chain-of-responsibility secrets manager.

    Queries providers in order, returning the first non-None result.
    """

    def __init__(self, providers: list[SecretProvider] | None = None):
        self._providers: list[SecretProvider] = providers or [EnvProvider()]

    def add_provider(self, provider: SecretProvider) -> None:
        self._providers.append(provider)

    def get(self, key_path: str, default: str | None = None) -> str | None:
        for provider in self._providers:
            value = provider.get(key_path)
            if value is not None:
                return value
        return default

    def get_namespace(self, namespace: str) -> dict[str, Any]:
        """Merge a namespace from all providers; earlier providers win."""
        result: dict[str, Any] = {}
        for provider in reversed(self._providers):
            result.update(provider.get_namespace(namespace))
        return result

    def require(self, key_path: str) -> str:
        """Get a secret, raising SecretNotFoundError if not found."""
        value = self.get(key_path)
        if value is None:
            providers_desc = ", ".join(type(p).__name__ for p in self._providers)
            raise SecretNotFoundError(f"Secret '{key_path}' not found in providers: [{providers_desc}]")
        return value


def default_secrets(data_dir: str | Path, env_prefix: str = "SLEEPSYNC_") -> SecretsManager:
    """Env vars first, then ``<data_dir>/secrets.yaml``."""
    return SecretsManager(
        providers=[
            EnvProvider(env_prefix),
            YamlFileProvider(Path(data_dir).expanduser() / "secrets.yaml"),
        ]
    )
