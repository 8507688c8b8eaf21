"""
Duration expansion and prior sampling for VITS inference.

The exported duration predictor and flow leave two steps to the caller:
  1. turning log-durations into integer frame counts and repeating each
     symbol's prior mean / log-scale column that many times, and
  2. sampling the latent z_p = m_p + exp(logs_p) * noise * noise_scale.

Randomness comes from an injectable uniform source: any object with
`random(size) -> ndarray` of floats in [0, 1). numpy.random.Generator
satisfies this, so `np.random.default_rng(seed)` gives reproducible output.
"""

import logging
from typing import Callable, Dict, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def compute_durations(
    logw: np.ndarray,
    x_mask: np.ndarray,
    length_scale: float = 1.0,
) -> Tuple[np.ndarray, int]:
    """
    Frame count per input symbol: ceil(exp(logw) * mask * length_scale).

    Returns:
        (durations [T] int64, total_frames). total_frames is clamped to 1 when
        every duration is zero so downstream tensors are never empty.
    """
    logw = np.asarray(logw, dtype=np.float64).reshape(-1)
    mask = np.asarray(x_mask, dtype=np.float64).reshape(-1)
    if logw.shape != mask.shape:
        raise ValueError(f"logw has {logw.size} steps but x_mask has {mask.size}")

    durations = np.ceil(np.exp(logw) * mask * length_scale).astype(np.int64)
    total_frames = int(durations.sum())
    if total_frames == 0:
        logger.debug("All durations are zero, clamping total_frames to 1")
        total_frames = 1
    return durations, total_frames


def expand_by_durations(
    values: np.ndarray,
    durations: np.ndarray,
    total_frames: int,
) -> np.ndarray:
    """
    Repeat column t of a [channels, T] (or [1, channels, T]) tensor
    durations[t] times, left to right, into exactly total_frames columns.

    Columns past total_frames are dropped; in the clamped all-zero case the
    single frame stays zero.
    """
    values = np.asarray(values, dtype=np.float32)
    if values.ndim == 3:
        values = values[0]
    channels, steps = values.shape
    if steps != len(durations):
        raise ValueError(f"values have {steps} steps but {len(durations)} durations given")

    repeated = np.repeat(values, durations, axis=1)[:, :total_frames]
    expanded = np.zeros((channels, total_frames), dtype=np.float32)
    expanded[:, : repeated.shape[1]] = repeated
    return expanded


# ── Noise ──────────────────────────────────────────────────────────

def gaussian_noise(rng, shape: Tuple[int, ...]) -> np.ndarray:
    """Standard normal noise via Box–Muller on two independent uniform draws."""
    n = int(np.prod(shape))
    u1 = 1.0 - rng.random(n)  # (0, 1], keeps log finite
    u2 = rng.random(n)
    z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
    return z.reshape(shape)


def uniform_noise(rng, shape: Tuple[int, ...]) -> np.ndarray:
    """Uniform noise in [-1, 1). Brighter, buzzier texture than Gaussian."""
    n = int(np.prod(shape))
    return (rng.random(n) * 2.0 - 1.0).reshape(shape)


NOISE_FUNCTIONS: Dict[str, Callable] = {
    "gaussian": gaussian_noise,
    "uniform": uniform_noise,
}


def sample_latent(
    m_p: np.ndarray,
    logs_p: np.ndarray,
    noise_scale: float,
    rng,
    distribution: str = "gaussian",
) -> np.ndarray:
    """Draw z_p = m_p + exp(logs_p) * noise * noise_scale, one draw per element."""
    if m_p.shape != logs_p.shape:
        raise ValueError(f"m_p {m_p.shape} and logs_p {logs_p.shape} differ in shape")
    try:
        noise_fn = NOISE_FUNCTIONS[distribution]
    except KeyError:
        raise ValueError(f"Unknown noise distribution {distribution!r}") from None

    noise = noise_fn(rng, m_p.shape) * noise_scale
    z_p = m_p.astype(np.float64) + np.exp(logs_p.astype(np.float64)) * noise
    return z_p.astype(np.float32)
