"""Secret store contract and the thin adapters the gateway ships with.

The gateway only ever reads credentials. Where they live (OS keychain,
encrypted file, environment) is the embedding application's business; it
hands the client anything that satisfies :class:`SecretStore`.
"""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Protocol, Tuple

import yaml

from fedigate.core.config import Settings


class SecretStore(Protocol):
    def read(self, service: str, account: str) -> Optional[str]:
        """Return the stored value, or ``None`` when nothing is stored."""


class InMemorySecretStore:
    def __init__(self, values: Optional[Dict[Tuple[str, str], str]] = None) -> None:
        self._lock = Lock()
        self._values: Dict[Tuple[str, str], str] = dict(values or {})

    def read(self, service: str, account: str) -> Optional[str]:
        with self._lock:
            return self._values.get((service, account))

    def save(self, value: str, *, service: str, account: str) -> None:
        with self._lock:
            self._values[(service, account)] = value

    def delete(self, *, service: str, account: str) -> None:
        with self._lock:
            self._values.pop((service, account), None)


class YamlFileSecretStore:
    """Read-only store backed by a YAML mapping ``service -> account -> value``."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        parsed = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        if not isinstance(parsed, dict):
            raise ValueError("Secret store file must be a YAML object")
        return parsed

    def read(self, service: str, account: str) -> Optional[str]:
        accounts = self._load().get(service)
        if not isinstance(accounts, dict):
            return None
        value = accounts.get(account)
        if value is None:
            return None
        return str(value)


class SettingsSecretStore:
    """Serves the base URL and access token configured through the environment."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def read(self, service: str, account: str) -> Optional[str]:
        if service != self._settings.secret_service_name:
            return None
        values = {
            self._settings.secret_base_url_account: self._settings.mastodon_base_url,
            self._settings.secret_access_token_account: self._settings.mastodon_access_token,
        }
        value = values.get(account, "").strip()
        return value or None


def build_secret_store(settings: Settings) -> SecretStore:
    if settings.secret_store_file_path.strip():
        return YamlFileSecretStore(settings.secret_store_file_path.strip())
    return SettingsSecretStore(settings)
