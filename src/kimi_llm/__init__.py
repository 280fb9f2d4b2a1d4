"""Streaming chat-completion client for the Kimi (Moonshot) API."""

from .credentials import CredentialStore, KeyringSecretStore, SecretStore
from .limiter import RateLimiter
from .provider import KimiModel, KimiProvider
from .settings import AvailableModel, KimiSettings
from .types import ChatRequest, ForceTool, Message, ToolSpec

__all__ = [
    "KimiProvider",
    "KimiModel",
    "KimiSettings",
    "AvailableModel",
    "CredentialStore",
    "KeyringSecretStore",
    "SecretStore",
    "RateLimiter",
    "ChatRequest",
    "Message",
    "ToolSpec",
    "ForceTool",
]
