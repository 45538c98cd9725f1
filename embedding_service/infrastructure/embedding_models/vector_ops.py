# embedding_service/infrastructure/embedding_models/vector_ops.py
from typing import Optional, Sequence, Union

import numpy as np

MaskLike = Union[Sequence[int], np.ndarray]


def mean_pool(hidden_states: np.ndarray, attention_mask: MaskLike) -> np.ndarray:
    """
    Averages token vectors over the positions where the mask is 1.

    Accepts hidden states shaped (1, L, D) or (L, D). The divisor is
    max(1, number of real tokens), so an all-padding mask yields zeros.
    """
    states = np.asarray(hidden_states, dtype=np.float32)
    if states.ndim == 3:
        if states.shape[0] != 1:
            raise ValueError(f"mean_pool expects a single sequence, got batch of {states.shape[0]}")
        states = states[0]
    if states.ndim != 2:
        raise ValueError(f"hidden_states must be (1, L, D) or (L, D), got shape {np.shape(hidden_states)}")

    mask = np.asarray(attention_mask).reshape(-1)
    if mask.shape[0] != states.shape[0]:
        raise ValueError(f"attention_mask length {mask.shape[0]} does not match sequence length {states.shape[0]}")

    valid = mask == 1
    summed = states[valid].sum(axis=0, dtype=np.float32)
    return summed / max(int(valid.sum()), 1)


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scales the vector to unit L2 norm; a zero vector is returned unchanged."""
    values = np.asarray(vector, dtype=np.float64)
    # scale by the largest magnitude so the norm neither overflows nor underflows
    scale = float(np.max(np.abs(values))) if values.size else 0.0
    if not scale > 0:
        return values.astype(np.float32)
    scaled = values / scale
    return (scaled / np.linalg.norm(scaled)).astype(np.float32)


def random_unit_vector(dimension: int, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Uniform values in [-1, 1), normalized. Used when real inference is unavailable."""
    if dimension < 1:
        raise ValueError(f"dimension must be positive, got {dimension}")
    generator = rng if rng is not None else np.random.default_rng()
    return l2_normalize(generator.uniform(-1.0, 1.0, size=dimension).astype(np.float32))
