"""
Vector primitives shared by every search strategy.

Similarity is cosine mapped from [-1, 1] into [0, 1] via (cos + 1) / 2.
Malformed inputs score 0 instead of raising so one bad record can never
abort a scan.
"""

from numbers import Real
from typing import Any, Optional, Sequence

import numpy as np


def vector_norm(vec: np.ndarray) -> float:
    return float(np.sqrt(np.dot(vec, vec)))


def cosine_similarity(
    a: Sequence[float],
    b: Sequence[float],
    *,
    norm_a: Optional[float] = None,
) -> float:
    """
    Normalized cosine similarity in [0, 1].

    Args:
        a: Query vector
        b: Candidate vector
        norm_a: Precomputed norm of ``a`` (the query side of a scan)

    Returns:
        0.0 on length mismatch, empty input, or a zero-norm vector.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.ndim != 1 or va.shape != vb.shape or va.size == 0:
        return 0.0

    na = vector_norm(va) if norm_a is None else norm_a
    nb = vector_norm(vb)
    if na == 0.0 or nb == 0.0:
        return 0.0

    cos = float(np.dot(va, vb)) / (na * nb)
    return min(1.0, max(0.0, (cos + 1.0) / 2.0))


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and np.isfinite(value)


def normalize_embedding(raw: Any) -> Optional[np.ndarray]:
    """
    Convert a stored embedding into a dense float array.

    Storage drift means a vector can arrive either as a plain sequence or as
    a mapping keyed by integer strings ("0", "1", ...). Both collapse to the
    same dense array. Anything else returns None and the caller treats the
    vector as absent.
    """
    if raw is None:
        return None

    if isinstance(raw, np.ndarray):
        values = raw.tolist() if raw.ndim == 1 else None
    elif isinstance(raw, dict):
        try:
            keyed = sorted((int(k), v) for k, v in raw.items())
        except (TypeError, ValueError):
            return None
        if [k for k, _ in keyed] != list(range(len(keyed))):
            return None
        values = [v for _, v in keyed]
    elif isinstance(raw, (list, tuple)):
        values = list(raw)
    else:
        return None

    if not values or not all(_is_number(v) for v in values):
        return None
    return np.asarray(values, dtype=np.float64)
