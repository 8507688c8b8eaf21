#!/usr/bin/env python3
"""
Synthesis Configuration for Vietnamese VITS TTS

Runtime knobs for the ONNX inference engine. Model-side facts (symbols,
language ids, sample rate) come from the model's own tts_config.json and are
loaded separately as a SymbolTable.

Key parameters:
  - noise_scale: prior sampling temperature (lower = flatter, more stable)
  - length_scale: speaking rate (1.0 = normal, >1 = slower)
  - noise_distribution: "gaussian" (Box–Muller) or "uniform" in [-1, 1]
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional, Union

from .chunking import LONG_SILENCE, MAX_WORDS_PER_CHUNK, SHORT_SILENCE

logger = logging.getLogger(__name__)

NOISE_DISTRIBUTIONS = ("gaussian", "uniform")
GRAPH_OPTIMIZATION_LEVELS = ("disable", "basic", "extended", "all")


@dataclass
class SynthesisConfig:
    """Inference configuration for the Vietnamese VITS engine."""

    # Voice
    speaker_id: int = 1
    language: str = "VI"

    # Sampling
    noise_scale: float = 0.667
    length_scale: float = 1.0
    noise_distribution: str = "gaussian"
    seed: Optional[int] = None

    # Chunking
    max_words_per_chunk: int = MAX_WORDS_PER_CHUNK
    short_silence: float = SHORT_SILENCE
    long_silence: float = LONG_SILENCE

    # Text encoder auxiliary embeddings (zero-filled)
    bert_dim: int = 1024
    ja_bert_dim: int = 768

    # ONNX Runtime
    providers: List[str] = field(default_factory=lambda: ["CPUExecutionProvider"])
    graph_optimization: str = "basic"
    intra_op_num_threads: Optional[int] = None

    def __post_init__(self):
        if self.noise_distribution not in NOISE_DISTRIBUTIONS:
            raise ValueError(
                f"noise_distribution must be one of {NOISE_DISTRIBUTIONS}, "
                f"got {self.noise_distribution!r}"
            )
        if self.graph_optimization not in GRAPH_OPTIMIZATION_LEVELS:
            raise ValueError(
                f"graph_optimization must be one of {GRAPH_OPTIMIZATION_LEVELS}, "
                f"got {self.graph_optimization!r}"
            )
        if self.length_scale <= 0:
            raise ValueError(f"length_scale must be positive, got {self.length_scale}")
        if self.noise_scale < 0:
            raise ValueError(f"noise_scale must be >= 0, got {self.noise_scale}")
        if self.max_words_per_chunk < 1:
            raise ValueError(f"max_words_per_chunk must be >= 1, got {self.max_words_per_chunk}")
        if self.short_silence < 0 or self.long_silence < 0:
            raise ValueError("silence durations must be >= 0")

        if not self.providers:
            self.providers = ["CPUExecutionProvider"]

        if not os.environ.get("TESTING"):
            self._log_config()

    def _log_config(self):
        logger.info(
            f"Synthesis config: speaker={self.speaker_id} lang={self.language} "
            f"noise_scale={self.noise_scale} length_scale={self.length_scale} "
            f"noise={self.noise_distribution} seed={self.seed}"
        )
        logger.debug(
            f"Chunking: {self.max_words_per_chunk} words, "
            f"pauses {self.short_silence}s / {self.long_silence}s; "
            f"providers={self.providers} graph_opt={self.graph_optimization}"
        )

    def to_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, d: dict) -> "SynthesisConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(d) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in d.items() if k in known})


def load_config(path: Union[str, Path]) -> SynthesisConfig:
    """Load a SynthesisConfig from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return SynthesisConfig.from_dict(json.load(f))


def get_default_config() -> SynthesisConfig:
    return SynthesisConfig()


def get_stable_config() -> SynthesisConfig:
    """Low temperature: flatter prosody, fewest artifacts."""
    return SynthesisConfig(noise_scale=0.333)


def get_expressive_config() -> SynthesisConfig:
    """Higher temperature and slightly slower delivery, for narration."""
    return SynthesisConfig(noise_scale=0.8, length_scale=1.1)
