"""Procedural ambient noise for focus sessions.

Each call draws from its own ``numpy`` generator, so concurrent requests never
share random state. Buffers are mono float32 in ``[-1, 1]``.
"""
import io

import numpy as np
import soundfile as sf

AMBIENT_KINDS = ("rain", "ocean", "forest", "fire", "whitenoise", "brown")

# Brown noise: y[i] = (y[i-1] + 0.02 * white[i]) / 1.02, then gained up
BROWN_LEAK = 1 / 1.02
BROWN_INPUT = 0.02 / 1.02
BROWN_GAIN = 3.5

FIRE_CRACKLE_PROBABILITY = 0.005
_INTEGRATE_BLOCK = 1024


def sample_count(sample_rate: int, seconds: float) -> int:
    return int(round(sample_rate * seconds))


def synthesize(
    kind: str, sample_rate: int, seconds: float, seed: int | None = None
) -> np.ndarray:
    """Render ``seconds`` of the ambient sound ``kind``.

    ``seed`` pins the generator for reproducible output in tests; the HTTP
    endpoint never passes it. Raises ``ValueError`` for an unknown kind or a
    non-positive sample rate.
    """
    if kind not in AMBIENT_KINDS:
        raise ValueError(f"Unknown ambient sound: {kind}")
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    if seconds < 0:
        raise ValueError("seconds must not be negative")

    rng = np.random.default_rng(seed)
    n = sample_count(sample_rate, seconds)
    index = np.arange(n, dtype=np.float64)

    if kind in ("rain", "whitenoise"):
        samples = rng.uniform(-1.0, 1.0, n)
    elif kind == "ocean":
        # slow swell, one cycle roughly every minute
        swell = np.sin(index * 0.1 / sample_rate) * 0.5 + 0.5
        samples = rng.uniform(-1.0, 1.0, n) * swell
    elif kind == "forest":
        chirp = np.sin(index / 100) * np.sin(index / 1000) * 0.3
        samples = rng.uniform(-0.25, 0.25, n) + chirp
    elif kind == "fire":
        crackle = np.where(
            rng.random(n) < FIRE_CRACKLE_PROBABILITY,
            rng.uniform(-1.0, 1.0, n) * 0.8,
            0.0,
        )
        samples = rng.uniform(-0.15, 0.15, n) + crackle
    else:
        samples = _leaky_integrate(rng.uniform(-1.0, 1.0, n)) * BROWN_GAIN

    return np.clip(samples, -1.0, 1.0).astype(np.float32)


def _leaky_integrate(white: np.ndarray) -> np.ndarray:
    """Vectorized ``y[i] = BROWN_LEAK * y[i-1] + BROWN_INPUT * white[i]``.

    Solved in closed form per block; blocks keep the decay powers in range.
    """
    out = np.empty_like(white)
    powers = BROWN_LEAK ** np.arange(_INTEGRATE_BLOCK + 1, dtype=np.float64)
    last = 0.0
    for start in range(0, len(white), _INTEGRATE_BLOCK):
        chunk = white[start:start + _INTEGRATE_BLOCK] * BROWN_INPUT
        size = len(chunk)
        decay = powers[:size]
        block = powers[1:size + 1] * last + decay * np.cumsum(chunk / decay)
        out[start:start + size] = block
        last = block[-1]
    return out


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """16-bit PCM mono WAV bytes for a float buffer in ``[-1, 1]``."""
    buffer = io.BytesIO()
    sf.write(buffer, np.clip(samples, -1.0, 1.0), sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()
