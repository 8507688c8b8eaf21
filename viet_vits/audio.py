"""
Audio assembly and WAV output.

Chunk waveforms and pauses are concatenated in reading order, then written
as mono 16-bit PCM WAV.
"""

import io
import logging
from pathlib import Path
from typing import Iterable, Union

import numpy as np
import soundfile as sf

logger = logging.getLogger(__name__)

Segment = Union[np.ndarray, float, int]


def make_silence(duration: float, sample_rate: int) -> np.ndarray:
    """Zero buffer of round(sample_rate * duration) samples."""
    if duration < 0:
        raise ValueError(f"Silence duration must be >= 0, got {duration}")
    return np.zeros(int(round(sample_rate * duration)), dtype=np.float32)


def assemble(segments: Iterable[Segment], sample_rate: int) -> np.ndarray:
    """
    Concatenate waveforms and silences in order.

    Args:
        segments: waveform arrays, or numbers giving a pause in seconds
        sample_rate: rate used to size the pauses

    Returns:
        One float32 waveform
    """
    parts = []
    for segment in segments:
        if isinstance(segment, np.ndarray):
            parts.append(segment.astype(np.float32, copy=False).reshape(-1))
        else:
            parts.append(make_silence(float(segment), sample_rate))

    if not parts:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate(parts)


def _prepare(audio: np.ndarray) -> np.ndarray:
    return np.clip(np.asarray(audio, dtype=np.float32).reshape(-1), -1.0, 1.0)


def to_wav_bytes(audio: np.ndarray, sample_rate: int) -> bytes:
    """Encode a waveform as an in-memory mono 16-bit PCM WAV file."""
    buf = io.BytesIO()
    sf.write(buf, _prepare(audio), sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def save_audio(audio: np.ndarray, path: Union[str, Path], sample_rate: int) -> Path:
    """Write a waveform to disk as mono 16-bit PCM WAV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(path), _prepare(audio), sample_rate, format="WAV", subtype="PCM_16")
    logger.info(f"Saved: {path}")
    return path
