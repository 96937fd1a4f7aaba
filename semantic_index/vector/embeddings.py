"""
Embedding and chat provider.
Delegates to a remote Ollama model when configured; otherwise, or on any remote failure,
answers with deterministic local fallbacks. One remote attempt per call, no retries.

The hash embedding is not semantically meaningful beyond exact or near-exact text overlap.
It keeps indexing and retrieval functional offline.
"""

import asyncio
import re
import time
import unicodedata
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import numpy as np
import ollama

from ..core import config
from ..core.telemetry import DependencyTelemetry, telemetry as default_telemetry
from ..util.logging import logger

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")

DEFAULT_CHAT_TEMPERATURE = 0.2
DEFAULT_CHAT_MAX_TOKENS = 600


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic bucket-hash embedding.

    Each character of the lowercased, diacritic-free text adds a signed weight
    to the bucket ``(code * (index + 17)) % dimension``; the result is L2-normalized.
    Identical text always yields a bit-identical vector.
    """

    def __init__(self, dimension: int = config.DEFAULT_EMBEDDING_DIMENSIONS):
        self.dimension = dimension

    def embed_text(self, text: str) -> List[float]:
        values = np.zeros(self.dimension, dtype=np.float64)
        normalized = _COMBINING_MARKS.sub("", unicodedata.normalize("NFD", text.lower()))

        for index, char in enumerate(normalized):
            code = ord(char)
            bucket = (code * (index + 17)) % self.dimension
            signed = 1 if index % 2 == 0 else -1
            values[bucket] += signed * ((code % 31) + 1)

        magnitude = float(np.linalg.norm(values))
        if magnitude == 0:
            return values.tolist()

        return (values / magnitude).tolist()

    def get_dimension(self) -> int:
        return self.dimension


def extract_message_content(raw: Any) -> Optional[str]:
    """Chat content as trimmed text; accepts a string or a list of parts carrying ``text``."""
    if isinstance(raw, str):
        trimmed = raw.strip()
        return trimmed or None

    if not isinstance(raw, list):
        return None

    chunks = []
    for part in raw:
        text = part.get("text") if isinstance(part, dict) else getattr(part, "text", None)
        if isinstance(text, str) and text.strip():
            chunks.append(text.strip())

    if not chunks:
        return None
    return "\n".join(chunks)


def generate_fallback_completion(system_prompt: str, user_prompt: str) -> str:
    first_line = next(
        (line for line in user_prompt.split("\n") if line.strip()),
        "No se recibio una consulta valida.",
    )
    return "\n".join([
        "Asistente (modo fallback):",
        first_line.strip(),
        "",
        "Estoy operando sin proveedor externo de IA. Revisa la configuracion AI_REMOTE_ENABLED / OLLAMA_HOST para respuestas enriquecidas.",
        "",
        f"Contexto aplicado: {system_prompt[:140]}...",
    ])


class EmbeddingProvider:
    """
    Model access for the semantic index.

    Never fails observably: every remote error, timeout or empty payload resolves
    to the deterministic fallback. Each remote attempt is reported to telemetry.
    """

    def __init__(self,
                 client: Optional[Any] = None,
                 remote_enabled: Optional[bool] = None,
                 dimensions: Optional[int] = None,
                 embed_model: Optional[str] = None,
                 chat_model: Optional[str] = None,
                 timeout: Optional[float] = None,
                 telemetry: Optional[DependencyTelemetry] = None):
        self._remote_enabled = config.is_remote_ai_enabled() if remote_enabled is None else remote_enabled
        self._dimensions = dimensions or config.get_embedding_dimensions()
        self.embed_model = embed_model or config.OLLAMA_EMBED_MODEL
        self.chat_model = chat_model or config.OLLAMA_CHAT_MODEL
        self.timeout = timeout or config.get_ai_timeout()
        self.telemetry = telemetry or default_telemetry
        self.local = DeterministicHashEmbedding(self._dimensions)
        self._client = client

        if not self._remote_enabled:
            logger.warning("Remote model provider not configured; using deterministic local fallbacks")

    @property
    def client(self):
        if self._client is None:
            self._client = ollama.AsyncClient(host=config.OLLAMA_HOST, timeout=self.timeout)
        return self._client

    def is_remote_enabled(self) -> bool:
        return self._remote_enabled

    def provider_name(self) -> str:
        return "remote" if self._remote_enabled else "local-fallback"

    def dimensions(self) -> int:
        return self._dimensions

    async def create_embedding(self, text: str) -> List[float]:
        """Embedding vector for semantic retrieval."""
        normalized_text = (text or "").strip()

        if not normalized_text:
            return self.local.embed_text("empty")

        if not self._remote_enabled:
            return self.local.embed_text(normalized_text)

        started_at = time.perf_counter()
        success = True
        try:
            response = await asyncio.wait_for(
                self.client.embed(model=self.embed_model, input=normalized_text),
                timeout=self.timeout,
            )
            embeddings = response["embeddings"]
            vector = list(embeddings[0]) if embeddings else []
            if not vector:
                logger.warning("Embedding response was empty; using fallback")
                return self.local.embed_text(normalized_text)
            return [float(value) for value in vector]

        except asyncio.TimeoutError:
            success = False
            logger.warning(f"Embedding request timed out after {self.timeout}s; using fallback")
            return self.local.embed_text(normalized_text)

        except ollama.ResponseError as e:
            success = False
            logger.warning(f"Embedding model error; using fallback ({e})")
            return self.local.embed_text(normalized_text)

        except Exception as e:
            success = False
            logger.warning(f"Embedding request failed; using fallback ({e})")
            return self.local.embed_text(normalized_text)

        finally:
            self.telemetry.track_dependency_call(
                "ai", "embedding", (time.perf_counter() - started_at) * 1000, success
            )

    async def generate_chat_completion(self,
                                       system_prompt: str,
                                       user_prompt: str,
                                       temperature: Optional[float] = None,
                                       max_tokens: Optional[int] = None) -> str:
        """Conversational answer from the remote model, or the templated fallback."""
        system_prompt = (system_prompt or "").strip()
        user_prompt = (user_prompt or "").strip()

        if not self._remote_enabled:
            return generate_fallback_completion(system_prompt, user_prompt)

        started_at = time.perf_counter()
        success = True
        try:
            response = await asyncio.wait_for(
                self.client.chat(
                    model=self.chat_model,
                    messages=[
                        {'role': 'system', 'content': system_prompt},
                        {'role': 'user', 'content': user_prompt},
                    ],
                    options={
                        'temperature': DEFAULT_CHAT_TEMPERATURE if temperature is None else temperature,
                        'num_predict': DEFAULT_CHAT_MAX_TOKENS if max_tokens is None else max_tokens,
                    },
                ),
                timeout=self.timeout,
            )
            parsed = extract_message_content(response["message"]["content"])
            if parsed:
                return parsed
            return generate_fallback_completion(system_prompt, user_prompt)

        except asyncio.TimeoutError:
            success = False
            logger.warning(f"Chat completion timed out after {self.timeout}s; using fallback")
            return generate_fallback_completion(system_prompt, user_prompt)

        except ollama.ResponseError as e:
            success = False
            logger.warning(f"Chat model error; using fallback ({e})")
            return generate_fallback_completion(system_prompt, user_prompt)

        except Exception as e:
            success = False
            logger.warning(f"Chat completion failed; using fallback ({e})")
            return generate_fallback_completion(system_prompt, user_prompt)

        finally:
            self.telemetry.track_dependency_call(
                "ai", "chat_completion", (time.perf_counter() - started_at) * 1000, success
            )
