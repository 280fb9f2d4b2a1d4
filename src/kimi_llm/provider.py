"""Kimi (Moonshot) provider: authentication, model catalog and streaming calls."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable

import httpx

from kimi_llm.base import Model, Provider
from kimi_llm.credentials import CredentialStore, KeyringSecretStore, SecretStore
from kimi_llm.decoder import TextStream, text_stream, tool_arguments
from kimi_llm.errors import UnknownModelError
from kimi_llm.limiter import DEFAULT_MAX_CONCURRENT_REQUESTS, AdmittedStream, RateLimiter
from kimi_llm.models import build_catalog
from kimi_llm.settings import KimiSettings, SettingsSource, settings_source
from kimi_llm.tokens import estimate_tokens
from kimi_llm.translator import to_wire_request
from kimi_llm.transport import stream_completion
from kimi_llm.types import ChatRequest, ForceTool, ModelDescriptor, StreamEvent, ToolSpec, WireRequest

PROVIDER_ID = "kimiai"
PROVIDER_NAME = "KimiAi"


class KimiProvider(Provider):
    """Entry point used by the host application.

    All models handed out by one provider share its credential store, HTTP client
    and request limiter.
    """

    id = PROVIDER_ID
    name = PROVIDER_NAME
    _logger = logging.getLogger(__name__)

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        settings: KimiSettings | SettingsSource | None = None,
        secret_store: SecretStore | None = None,
        environ: Mapping[str, str] | None = None,
        max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS,
        timeout_s: float = 60.0,
    ) -> None:
        self._settings = settings_source(settings)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._timeout_s = timeout_s
        self._limiter = RateLimiter(max_concurrent_requests)
        self.credentials = CredentialStore(
            secret_store or KeyringSecretStore(),
            lambda: self._settings().api_url,
            environ=environ,
        )

    @property
    def settings(self) -> KimiSettings:
        return self._settings()

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    async def aclose(self) -> None:
        """Fail pending requests and close the HTTP client if this provider created it."""
        self._limiter.close()
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> KimiProvider:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def provided_models(self) -> list[KimiModel]:
        """Built-in models merged with those declared in settings, ordered by id."""
        catalog = build_catalog(self._settings().available_models)
        return [KimiModel(descriptor, self) for descriptor in catalog]

    def model(self, model_id: str) -> KimiModel:
        for model in self.provided_models():
            if model.id == model_id:
                return model
        raise UnknownModelError(model_id)

    def is_authenticated(self) -> bool:
        return self.credentials.is_authenticated

    @property
    def api_key_from_env(self) -> bool:
        return self.credentials.from_environment

    async def authenticate(self) -> None:
        await self.credentials.resolve()

    async def set_api_key(self, api_key: str) -> None:
        await self.credentials.set(api_key)

    async def reset_credentials(self) -> None:
        await self.credentials.reset()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self.credentials.subscribe(listener)

    def settings_changed(self) -> None:
        """Tell subscribers the settings snapshot changed (models may differ)."""
        self.credentials.notify()

    async def stream_completion(self, request: WireRequest) -> AdmittedStream[StreamEvent]:
        """Send ``request`` and return its events while holding a request slot."""
        settings = self._settings()
        credential = await self.credentials.resolve()
        self._logger.debug("Streaming completion for %s", request.model)
        return await self._limiter.stream(
            lambda: stream_completion(
                self._client,
                settings.api_url,
                credential.secret,
                request,
                settings.low_speed_timeout,
                timeout_s=self._timeout_s,
            )
        )


class KimiModel(Model):
    """One entry of the provider's catalog."""

    provider_id = PROVIDER_ID
    provider_name = PROVIDER_NAME

    def __init__(self, descriptor: ModelDescriptor, provider: KimiProvider) -> None:
        self.descriptor = descriptor
        self.id = descriptor.id
        self.name = descriptor.display_name
        self._provider = provider

    def __repr__(self) -> str:
        return f"KimiModel(id={self.id!r})"

    def max_token_count(self) -> int:
        return self.descriptor.max_tokens

    def max_output_tokens(self) -> int | None:
        return self.descriptor.max_output_tokens

    async def count_tokens(self, request: ChatRequest) -> int:
        return estimate_tokens(request)

    async def stream_text(self, request: ChatRequest) -> TextStream:
        wire = to_wire_request(request, self.id, self.max_output_tokens())
        events = await self._provider.stream_completion(wire)
        return text_stream(events)

    async def stream_tool_use(
        self,
        request: ChatRequest,
        tool_name: str,
        tool_description: str,
        schema: dict[str, Any],
    ) -> Any:
        request = request.model_copy(
            update={
                "tool": ToolSpec(name=tool_name, description=tool_description, json_schema=schema),
                "tool_choice": ForceTool(name=tool_name),
            }
        )
        wire = to_wire_request(request, self.id, self.max_output_tokens())
        events = await self._provider.stream_completion(wire)
        return await tool_arguments(events, tool_name)
