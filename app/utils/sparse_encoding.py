"""
Keyword sparse encoding for hybrid knowledge search: tokenize + stable hash to indices/values.
Used when storing records (doc) and when searching (query) so both sides land in the same dimension.
"""
import re
import math
import zlib
from collections import Counter
from typing import List, Tuple

SPARSE_DIM = 2**18  # 262144; same for doc and query
MIN_TOKEN_LEN = 2


def _tokenize(text: str) -> List[str]:
    """Lowercase word tokens, dropping single characters (stray OCR glyphs)."""
    return [t for t in re.findall(r"\b\w+\b", (text or "").lower()) if len(t) >= MIN_TOKEN_LEN]


def _bucket(token: str) -> int:
    """crc32 keeps the index stable across processes (built-in hash() is salted per run)."""
    return zlib.crc32(token.encode("utf-8")) % SPARSE_DIM


def text_to_sparse_indices_values(text: str, mode: str = "doc") -> Tuple[List[int], List[float]]:
    """Produce sparse vector (indices, values). mode "doc": values = 1 + log(tf) per bucket. mode "query": 1.0 per unique bucket.
    Why available: Shared by QdrantContentStore.insert (doc) and QdrantContentStore.search (query)."""
    tokens = _tokenize(text)
    if not tokens:
        return [], []

    counter: Counter[int] = Counter(_bucket(t) for t in tokens)
    indices = sorted(counter)
    if mode == "query":
        return indices, [1.0] * len(indices)
    return indices, [1.0 + math.log(counter[idx]) for idx in indices]
