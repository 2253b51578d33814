"""Analysis service backends and their credentials."""

from __future__ import annotations

import os
from typing import Literal

AnalysisBackend = Literal["gemini", "openai"]

SUPPORTED_BACKENDS: list[str] = ["gemini", "openai"]

API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GOOGLE_API_KEY",
}

# Vision models able to read receipts and return JSON
DEFAULT_MODELS: dict[str, str] = {
    "gemini": "gemini-2.0-flash",
    "openai": "gpt-4o",
}


class BackendError(Exception):
    """The analysis backend is misconfigured; reported per file as a ServiceError."""

    pass


class MissingAPIKeyError(BackendError):
    def __init__(self, provider: str):
        env_var = API_KEY_ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")
        super().__init__(f"No API key for '{provider}': set {env_var} or pass api_key")
        self.provider = provider


class UnsupportedBackendError(BackendError):
    def __init__(self, backend: str, supported: list[str]):
        super().__init__(f"Backend '{backend}' is not supported. Supported backends: {', '.join(supported)}")
        self.backend = backend
        self.supported = supported


def get_api_key(provider: str, api_key: str | None = None) -> str:
    """Resolve the key for ``provider``: an explicit ``api_key`` wins over the environment.

    Raises:
        MissingAPIKeyError: If neither is set.
    """
    if api_key:
        return api_key

    env_var = API_KEY_ENV_VARS.get(provider)
    key = os.environ.get(env_var) if env_var else None
    if key:
        return key

    raise MissingAPIKeyError(provider)
