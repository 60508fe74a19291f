from __future__ import annotations

import math
import struct
from typing import Sequence

FLOAT_BYTES = 4


def encode_embedding(vector: Sequence[float] | None) -> bytes | None:
    """Pack a vector as contiguous little-endian float32. Absent vectors stay NULL."""
    if not vector:
        return None
    return struct.pack(f"<{len(vector)}f", *(float(v) for v in vector))


def decode_embedding(blob: bytes | None) -> list[float]:
    if not blob:
        raise ValueError("empty embedding blob")
    if len(blob) % FLOAT_BYTES != 0:
        raise ValueError(f"embedding blob length {len(blob)} is not a multiple of {FLOAT_BYTES}")
    dim = len(blob) // FLOAT_BYTES
    return list(struct.unpack(f"<{dim}f", blob))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"dimension mismatch: {len(a)} != {len(b)}")

    dot = 0.0
    mag_a = 0.0
    mag_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        mag_a += x * x
        mag_b += y * y

    if mag_a == 0.0 or mag_b == 0.0:
        return 0.0

    score = dot / (math.sqrt(mag_a) * math.sqrt(mag_b))
    if not math.isfinite(score):
        raise ValueError("non-finite similarity")
    return max(-1.0, min(1.0, score))
