"""Vector math on equal-length float lists.

Pure functions. Two-vector operations raise DimensionMismatchError when the
lengths differ.
"""

from __future__ import annotations

import math

from src.genesis.errors import DimensionMismatchError, EmptyInputError

Vector = list[float]


def _check_dims(a: Vector, b: Vector) -> None:
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))


def dot(a: Vector, b: Vector) -> float:
    _check_dims(a, b)
    return sum(x * y for x, y in zip(a, b))


def magnitude(v: Vector) -> float:
    """L2 norm."""
    return math.sqrt(sum(x * x for x in v))


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity in [-1, 1]; 0 when either vector has zero magnitude."""
    _check_dims(a, b)
    norm = magnitude(a) * magnitude(b)
    if norm == 0:
        return 0.0
    return dot(a, b) / norm


def euclidean_distance(a: Vector, b: Vector) -> float:
    _check_dims(a, b)
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def normalize(v: Vector) -> Vector:
    """Scale to unit length. The zero vector maps to itself."""
    norm = magnitude(v)
    if norm == 0:
        return [0.0] * len(v)
    return [x / norm for x in v]


def add(a: Vector, b: Vector) -> Vector:
    _check_dims(a, b)
    return [x + y for x, y in zip(a, b)]


def subtract(a: Vector, b: Vector) -> Vector:
    """Element-wise a - b."""
    _check_dims(a, b)
    return [x - y for x, y in zip(a, b)]


def scale(v: Vector, scalar: float) -> Vector:
    return [x * scalar for x in v]


def centroid(vectors: list[Vector]) -> Vector:
    """Arithmetic mean of a non-empty list of vectors."""
    if not vectors:
        raise EmptyInputError("Cannot calculate centroid of empty input")

    total = list(vectors[0])
    for v in vectors[1:]:
        total = add(total, v)
    return scale(total, 1.0 / len(vectors))
