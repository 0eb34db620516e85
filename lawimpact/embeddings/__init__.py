"""Text chunking, embedding providers and the embedding backfill job."""

from .chunking import chunk, chunk_text, estimate_tokens, normalize
from .providers import (
    EmbeddingProvider,
    GeminiEmbeddingProvider,
    OpenAIEmbeddingProvider,
    average_embeddings,
    create_embedding_provider,
    fit_dimension,
)
from .backfill import BackfillReport, EmbeddingBackfill

__all__ = [
    "chunk",
    "chunk_text",
    "estimate_tokens",
    "normalize",
    "EmbeddingProvider",
    "GeminiEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "average_embeddings",
    "create_embedding_provider",
    "fit_dimension",
    "BackfillReport",
    "EmbeddingBackfill",
]
