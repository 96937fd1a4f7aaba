"""
Vector layer - embeddings, accelerated projection and ranked retrieval over indexed businesses.
"""

# Package initialization for vector module
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, EmbeddingProvider
from .faiss_store import FaissProjectionStore
from .projection import ProjectionState, VectorProjectionSync
from .retrieval import AcceleratedBackend, FallbackBackend, RetrievalBackend, RetrievalEngine
from .similarity import cosine_similarity

__all__ = [
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'EmbeddingProvider',
    'FaissProjectionStore',
    'ProjectionState',
    'VectorProjectionSync',
    'AcceleratedBackend',
    'FallbackBackend',
    'RetrievalBackend',
    'RetrievalEngine',
    'cosine_similarity',
]
