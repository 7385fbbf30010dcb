"""Chat model client factory.

The configured model name (``google-gemini`` by default) resolves to an
OpenAI-compatible chat completions endpoint described by ``Settings``.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Optional, Protocol

import openai

from chatgraph.utils.errors import ModelInvocationError, ModelResolutionError
from chatgraph.utils.logger import get_logger

logger = get_logger(__name__)


class ChatModel(Protocol):
    name: str

    def complete(self, messages: List[Dict[str, str]], temperature: float) -> str:
        """Return the content of the first generated choice."""
        ...


class OpenAIChatModel:
    """``ChatModel`` over ``client.chat.completions.create``."""

    def __init__(self, client: openai.OpenAI, name: str, model_id: str):
        self.client = client
        self.name = name
        self.model_id = model_id

    def complete(self, messages: List[Dict[str, str]], temperature: float) -> str:
        logger.info(
            "Calling chat completion | model=%s (%s) | messages=%d",
            self.name,
            self.model_id,
            len(messages),
        )
        try:
            response = self.client.chat.completions.create(
                model=self.model_id,
                messages=messages,
                temperature=temperature,
            )
        except openai.OpenAIError as e:
            raise ModelInvocationError(f"error invoking model {self.name}: {e}") from e

        if not response.choices:
            raise ModelInvocationError(f"model {self.name} returned no choices")
        return response.choices[0].message.content or ""


def get_openai_client(api_key: Optional[str], base_url: Optional[str] = None) -> openai.OpenAI:
    """Initialize and return an OpenAI client.

    Raises:
        ValueError: If no API key is configured
    """
    if not api_key:
        raise ValueError(
            "Chat model API key not found. Please set either:\n"
            "1. CHAT_MODEL_API_KEY environment variable\n"
            "2. OPENAI_API_KEY environment variable"
        )
    return openai.OpenAI(api_key=api_key, base_url=base_url or None)


@lru_cache(maxsize=8)
def resolve_model(settings) -> ChatModel:
    """Return the chat model configured in ``settings``.

    Raises :class:`ModelResolutionError` when the model cannot be set up;
    there is no fallback model.
    """
    if not settings.model_name or not settings.model_id:
        raise ModelResolutionError("no chat model configured")
    try:
        client = get_openai_client(settings.model_api_key, settings.model_base_url)
    except ValueError as e:
        raise ModelResolutionError(f"error getting model {settings.model_name}: {e}") from e
    return OpenAIChatModel(client, settings.model_name, settings.model_id)
