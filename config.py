"""
Configuration module for chatgraph.

This module centralizes all configuration settings for the chat service,
loading values from environment variables with sensible defaults.  The
values are collected into an explicit :class:`Settings` object that is passed
to the history repository and the conversation orchestrator at construction
time, so deployments can vary them without touching code.
"""
import os
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# Dgraph Settings
DGRAPH_ADDR = os.getenv("DGRAPH_ADDR", "localhost:9080")
DGRAPH_CONNECTION_NAME = os.getenv("DGRAPH_CONNECTION_NAME", "website")
DGRAPH_API_KEY = os.getenv("DGRAPH_API_KEY")  # only needed for Dgraph Cloud

# Chat model settings
CHAT_MODEL_NAME = os.getenv("CHAT_MODEL_NAME", "google-gemini")
CHAT_MODEL_ID = os.getenv("CHAT_MODEL_ID", "gemini-2.0-flash")
CHAT_MODEL_BASE_URL = os.getenv(
    "CHAT_MODEL_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
)
CHAT_MODEL_API_KEY = os.getenv("CHAT_MODEL_API_KEY") or os.getenv("OPENAI_API_KEY")
CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

DEFAULT_SYSTEM_PROMPT = os.getenv("DEFAULT_SYSTEM_PROMPT", "You are a helpful assistant")

# Serialise turns of the same session inside one process
SERIALIZE_SESSIONS = os.getenv("CHATGRAPH_SERIALIZE_SESSIONS", "true").lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by the repository, orchestrator and backend."""

    dgraph_addr: str = DGRAPH_ADDR
    dgraph_connection_name: str = DGRAPH_CONNECTION_NAME
    dgraph_api_key: Optional[str] = DGRAPH_API_KEY
    model_name: str = CHAT_MODEL_NAME
    model_id: str = CHAT_MODEL_ID
    model_base_url: Optional[str] = CHAT_MODEL_BASE_URL
    model_api_key: Optional[str] = CHAT_MODEL_API_KEY
    temperature: float = CHAT_TEMPERATURE
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT
    serialize_sessions: bool = SERIALIZE_SESSIONS


def _check_required_env_vars() -> None:
    """Warn about settings without which a handler is bound to fail."""
    if not CHAT_MODEL_API_KEY:
        logger.warning(
            "CHAT_MODEL_API_KEY / OPENAI_API_KEY not set - Chat will fail to resolve model '%s'",
            CHAT_MODEL_NAME,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# Check required environment variables on import
_check_required_env_vars()
