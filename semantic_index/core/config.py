"""
Semantic index configuration.
Environment driven; values that tests flip at runtime are read through accessor functions.
"""

import os
from pathlib import Path
from typing import List
from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/semantic_index.db")

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Remote model provider (Ollama) - default disabled, deterministic local fallback is used instead
AI_REMOTE_ENABLED = os.getenv("AI_REMOTE_ENABLED", "false").lower() == "true"
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_EMBED_MODEL = os.getenv("OLLAMA_EMBED_MODEL", "nomic-embed-text")
OLLAMA_CHAT_MODEL = os.getenv("OLLAMA_CHAT_MODEL", "llama3.1")
AI_TIMEOUT_SEC = float(os.getenv("AI_TIMEOUT_SEC", "20"))

DEFAULT_EMBEDDING_DIMENSIONS = 1536
MIN_EMBEDDING_DIMENSIONS = 64
MAX_EMBEDDING_DIMENSIONS = 4096

# Accelerated vector projection
VECTOR_PROVIDER = os.getenv("VECTOR_PROVIDER", "faiss")  # faiss|none
PROJECTION_TABLE = "business_embedding_vectors"

# Retrieval bounds
SEARCH_CANDIDATE_LIMIT = int(os.getenv("SEARCH_CANDIDATE_LIMIT", "400"))
DEFAULT_SEARCH_LIMIT = 8
MAX_SEARCH_LIMIT = 25

APP_PUBLIC_WEB_URL = os.getenv("APP_PUBLIC_WEB_URL", "http://localhost:8080")

VERSION = "1.0.0"


def get_db_path() -> str:
    """Database path, re-read so tests can point at a temporary file."""
    return os.getenv("DB_PATH", DB_PATH)


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def is_remote_ai_enabled() -> bool:
    """Check if the remote model provider is configured."""
    return os.getenv("AI_REMOTE_ENABLED", "false").lower() == "true"


def get_embedding_dimensions() -> int:
    """Local embedding dimension count; invalid values fall back to the default."""
    raw = os.getenv("AI_EMBEDDING_DIMENSIONS", "").strip()
    if not raw:
        return DEFAULT_EMBEDDING_DIMENSIONS
    try:
        parsed = int(raw)
    except ValueError:
        return DEFAULT_EMBEDDING_DIMENSIONS
    if parsed < MIN_EMBEDDING_DIMENSIONS or parsed > MAX_EMBEDDING_DIMENSIONS:
        return DEFAULT_EMBEDDING_DIMENSIONS
    return parsed


def get_ai_timeout() -> float:
    return float(os.getenv("AI_TIMEOUT_SEC", str(AI_TIMEOUT_SEC)))


def get_vector_provider() -> str:
    return os.getenv("VECTOR_PROVIDER", VECTOR_PROVIDER).lower()


def are_vector_projections_enabled() -> bool:
    """Check if the accelerated projection table should exist."""
    return get_vector_provider() == "faiss"


def get_public_web_url() -> str:
    return os.getenv("APP_PUBLIC_WEB_URL", APP_PUBLIC_WEB_URL).strip().rstrip("/") or "http://localhost:8080"


def validate_config() -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    if get_vector_provider() not in ["faiss", "none"]:
        issues.append(f"Invalid VECTOR_PROVIDER: {get_vector_provider()}")

    raw_dimensions = os.getenv("AI_EMBEDDING_DIMENSIONS", "").strip()
    if raw_dimensions and get_embedding_dimensions() != _safe_int(raw_dimensions):
        issues.append(
            f"AI_EMBEDDING_DIMENSIONS must be an integer in "
            f"[{MIN_EMBEDDING_DIMENSIONS}, {MAX_EMBEDDING_DIMENSIONS}], using {DEFAULT_EMBEDDING_DIMENSIONS}"
        )

    try:
        if get_ai_timeout() <= 0:
            issues.append("AI_TIMEOUT_SEC must be > 0")
    except ValueError:
        issues.append("AI_TIMEOUT_SEC must be a number")

    if SEARCH_CANDIDATE_LIMIT < 1:
        issues.append("SEARCH_CANDIDATE_LIMIT must be >= 1")

    return issues


def _safe_int(raw: str):
    try:
        return int(raw)
    except ValueError:
        return None
