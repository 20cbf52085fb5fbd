"""
String normalisation and edit-distance similarity used to score search candidates against noisy screenshot text.
"""
import re

_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Replace punctuation with spaces, collapse whitespace and trim. Case is preserved; scoring case-folds separately.
    Why available: Screenshot OCR leaves bullets, pipes and emoji around titles; queries and scores both use the cleaned form."""
    if not text:
        return ""
    cleaned = _PUNCT_RE.sub(" ", text)
    return _WS_RE.sub(" ", cleaned).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Classic insert/delete/substitute edit distance, two-row dynamic programming."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def edit_similarity(a: str | None, b: str | None) -> float:
    """Normalised Levenshtein similarity in [0, 1]: (max_len - distance) / max_len, case-insensitive and symmetric. Two empty strings are identical (1.0).
    Why available: Scores each search candidate's title and channel against the cleaned screenshot guess in the resolver."""
    a = (a or "").casefold()
    b = (b or "").casefold()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(a, b)) / longest
