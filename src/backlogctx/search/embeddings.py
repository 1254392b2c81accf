"""Text embedders for the vector retriever."""

from __future__ import annotations

import hashlib
import logging
from typing import Protocol

import numpy as np

from backlogctx.search.tokenizer import tokenize

logger = logging.getLogger("backlogctx.search")


class Embedder(Protocol):
    """Anything that can turn text into a fixed-size vector.

    ``init`` may be slow (model download, warmup) and may raise; the index
    calls it at most once and falls back to lexical-only search on failure.
    """

    name: str
    dim: int

    async def init(self) -> None: ...

    async def embed(self, text: str) -> np.ndarray: ...


class HashedEmbedder:
    """Deterministic bag-of-words embedder using the hashing trick.

    Each token is hashed into one of ``dim`` buckets; the count vector is
    L2-normalized. No model files, no network, stable across processes.
    """

    def __init__(self, dim: int = 256) -> None:
        self.name = f"hashed-{dim}"
        self.dim = dim

    async def init(self) -> None:
        logger.debug(f"Hashed embedder ready (dim={self.dim})")

    async def embed(self, text: str) -> np.ndarray:
        return self.embed_sync(text)

    def embed_sync(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dim, dtype=np.float32)
        for token in tokenize(text):
            vector[_hash_token(token, self.dim)] += 1.0
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim
