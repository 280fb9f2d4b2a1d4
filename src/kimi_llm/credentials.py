"""API key resolution and caching.

The key comes from the ``KIMIAI_API_KEY_VAR`` environment variable when it is set,
otherwise from secure storage keyed by the API endpoint URL. The resolved key is cached
until :meth:`CredentialStore.reset` is called.

A key adopted from the environment stays authoritative for the life of the process:
:meth:`CredentialStore.set` still writes secure storage but does not replace it, and
unsetting the variable later has no effect until the store is reset.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from typing import Callable, Protocol

import keyring
from keyring.errors import KeyringError

from kimi_llm.errors import CredentialNotFound, EnvParseFailure, SecretStoreError
from kimi_llm.types import Credential, CredentialSource

API_KEY_ENV_VAR = "KIMIAI_API_KEY_VAR"
KEYRING_USERNAME = "Bearer"

_logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class SecretStore(Protocol):
    """Secure storage for secrets keyed by endpoint URL."""

    async def get(self, url: str) -> str | None: ...

    async def set(self, url: str, secret: str) -> None: ...

    async def delete(self, url: str) -> None: ...


class KeyringSecretStore:
    """``SecretStore`` backed by the system keyring.

    keyring calls block, so each runs in a worker thread. keyring failures (no
    backend on a headless host, a locked keychain) surface as ``SecretStoreError``.
    """

    def __init__(self, username: str = KEYRING_USERNAME) -> None:
        self._username = username

    async def get(self, url: str) -> str | None:
        try:
            return await asyncio.to_thread(keyring.get_password, url, self._username)
        except KeyringError as exc:
            raise SecretStoreError("read", url, exc) from exc

    async def set(self, url: str, secret: str) -> None:
        try:
            await asyncio.to_thread(keyring.set_password, url, self._username, secret)
        except KeyringError as exc:
            raise SecretStoreError("write", url, exc) from exc

    async def delete(self, url: str) -> None:
        try:
            await asyncio.to_thread(keyring.delete_password, url, self._username)
        except KeyringError as exc:
            raise SecretStoreError("delete", url, exc) from exc

class CredentialStore:
    """Owns the single cached API key and notifies subscribers when it changes."""

    def __init__(
        self,
        secret_store: SecretStore,
        api_url: Callable[[], str],
        *,
        environ: Mapping[str, str] | None = None,
        env_var: str = API_KEY_ENV_VAR,
    ) -> None:
        self._secret_store = secret_store
        self._api_url = api_url
        self._environ = environ if environ is not None else os.environ
        self._env_var = env_var
        self._credential: Credential | None = None
        self._lock = asyncio.Lock()
        self._listeners: list[Listener] = []
        self._version = 0

    @property
    def current(self) -> Credential | None:
        return self._credential

    @property
    def source(self) -> CredentialSource:
        return self._credential.source if self._credential else CredentialSource.UNSET

    @property
    def from_environment(self) -> bool:
        return self.source is CredentialSource.ENVIRONMENT

    @property
    def is_authenticated(self) -> bool:
        return self._credential is not None

    @property
    def version(self) -> int:
        """Incremented on every change; lets collaborators poll instead of subscribing."""
        return self._version

    @property
    def env_var(self) -> str:
        return self._env_var

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for change notifications. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            listener()

    async def resolve(self) -> Credential:
        """Return the cached key, loading it from the environment or storage if needed."""
        cached = self._credential
        if cached is not None:
            return cached

        async with self._lock:
            if self._credential is not None:
                return self._credential

            secret = self._environ.get(self._env_var)
            if secret is not None:
                if not _usable(secret):
                    raise EnvParseFailure(self._env_var)
                credential = Credential(secret=secret, source=CredentialSource.ENVIRONMENT)
                _logger.debug("Using API key from %s", self._env_var)
            else:
                url = self._api_url()
                stored = await self._secret_store.get(url)
                if stored is None:
                    raise CredentialNotFound(url)
                credential = Credential(secret=stored, source=CredentialSource.STORE)
                _logger.debug("Using API key from secure storage for %s", url)

            self._credential = credential
            self.notify()
            return credential

    async def set(self, secret: str) -> None:
        """Persist ``secret`` and make it the cached key."""
        await self._secret_store.set(self._api_url(), secret)
        async with self._lock:
            if self.from_environment:
                _logger.info(
                    "Stored new API key; %s remains in effect until credentials are reset",
                    self._env_var,
                )
            else:
                self._credential = Credential(secret=secret, source=CredentialSource.STORE)
            self.notify()

    async def reset(self) -> None:
        """Forget the cached key and delete it from storage (best effort)."""
        url = self._api_url()
        try:
            await self._secret_store.delete(url)
        except Exception:
            _logger.warning("Failed to delete stored API key for %s", url, exc_info=True)
        async with self._lock:
            self._credential = None
            self.notify()


def _usable(secret: str) -> bool:
    return bool(secret.strip()) and secret.isascii() and secret.isprintable()
