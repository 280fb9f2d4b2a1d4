"""Capability interfaces implemented by the Kimi provider."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any, Callable

from kimi_llm.types import ChatRequest


class CredentialHolder(ABC):
    """Something that owns an API key on behalf of a provider."""

    @abstractmethod
    def is_authenticated(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def authenticate(self) -> None:
        """Load credentials, raising ``AuthError`` if none are available."""
        raise NotImplementedError

    @abstractmethod
    async def reset_credentials(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call ``listener`` whenever credentials or settings change."""
        raise NotImplementedError


class Model(ABC):
    """A chat model exposed by a provider."""

    id: str
    name: str
    provider_id: str
    provider_name: str

    @property
    def telemetry_id(self) -> str:
        return f"{self.provider_id}/{self.id}"

    @abstractmethod
    def max_token_count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def max_output_tokens(self) -> int | None:
        raise NotImplementedError

    @abstractmethod
    async def count_tokens(self, request: ChatRequest) -> int:
        raise NotImplementedError

    @abstractmethod
    async def stream_text(self, request: ChatRequest) -> AsyncIterator[str]:
        """Return text fragments as the model produces them."""
        raise NotImplementedError

    @abstractmethod
    async def stream_tool_use(
        self,
        request: ChatRequest,
        tool_name: str,
        tool_description: str,
        schema: dict[str, Any],
    ) -> Any:
        """Force a call to ``tool_name`` and return its decoded arguments."""
        raise NotImplementedError


class Provider(CredentialHolder):
    """A source of models."""

    id: str
    name: str

    @abstractmethod
    def provided_models(self) -> list[Model]:
        raise NotImplementedError
