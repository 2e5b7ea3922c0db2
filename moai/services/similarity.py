"""
Moai — Similarity primitives.

Pure functions shared by the scorer:

  haversine_km  great-circle distance between two coordinates
  jaccard       set overlap, |A ∩ B| / |A ∪ B|
  cosine        angle similarity between two embedding vectors
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

import numpy as np

EARTH_RADIUS_KM: float = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres.

    Uses the ``atan2`` form, which stays stable for antipodal and
    near-identical points alike.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    # rounding can push a fractionally outside [0, 1]
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_KM * c


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard similarity of two collections, treated as sets.

    Two empty inputs score 1.0 (nothing to disagree on); exactly one empty
    input scores 0.0.
    """
    set_a = set(a or ())
    set_b = set(b or ())

    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0

    return len(set_a & set_b) / len(set_a | set_b)


def cosine(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity in [-1, 1].

    Returns 0.0 instead of raising when either vector is missing, empty,
    zero-norm, or the lengths differ.
    """
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0

    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)

    norm_a = float(np.linalg.norm(vec_a))
    norm_b = float(np.linalg.norm(vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    value = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, value))
