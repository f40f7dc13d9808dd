"""
Credential storage for Pendulum SDK.

A small synchronous key-value store for the bearer credentials (user auth
token and admin key). Values are persisted to a JSON file so they survive
process restarts.

Invariants:
    - Reads never raise; an unreadable file behaves as an empty store
    - Every write rewrites the whole file atomically
    - Stored values are never logged
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from .config import Settings

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "pendulum_auth_token"
ADMIN_KEY_KEY = "pendulum_admin_key"

# Global store
_global_store: CredentialStore | None = None
_store_lock = threading.Lock()


class CredentialStore:
    """File-backed key-value store for credentials."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        """Get a stored value, or None."""
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        """Store a value."""
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def remove(self, key: str) -> None:
        """Remove a value. Missing keys are ignored."""
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._save(data)

    def clear(self) -> None:
        """Remove every stored value."""
        with self._lock:
            if self.path.exists():
                self.path.unlink()

    def _load(self) -> dict[str, str]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read credentials from {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed credentials file {self.path}")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".credentials-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


def get_credential_store(path: str | Path | None = None) -> CredentialStore:
    """Get the process-wide credential store.

    Args:
        path: File to use when the store is first created
            (defaults to Settings().credentials_path)
    """
    global _global_store
    with _store_lock:
        if _global_store is None:
            if path is None:
                path = Settings().credentials_path
            _global_store = CredentialStore(path)
        return _global_store


def reset_credential_store() -> None:
    """Drop the process-wide store (for testing only)."""
    global _global_store
    with _store_lock:
        _global_store = None
