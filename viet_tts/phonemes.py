#!/usr/bin/env python3
"""
Vietnamese Phoneme Inventory and Symbol Table

Defines the reserved tokens, tone constants and the symbol table loaded from
the acoustic model's tts_config.json.

The model is a multilingual Bert-VITS2 export: Vietnamese phonemes share one
id space with the other languages, tones live in a per-language range
(Vietnamese starts at 16) and every symbol carries a language id.

Vietnamese tones (viphoneme numbering):
- 1 ngang (level)     - 4 hỏi (dipping)
- 2 huyền (falling)   - 5 sắc (rising)
- 3 ngã (creaky)      - 6 nặng (heavy)
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Union

from .errors import ConfigLoadError

logger = logging.getLogger(__name__)


# ── Special Tokens ──────────────────────────────────────────────────

BOUNDARY_TOKEN = "_"     # sequence start/end, also the pad symbol
UNK_TOKEN = "UNK"
UNK_FALLBACK_ID = 305    # used when the table has no UNK entry
BLANK_ID = 0             # interleaved between symbols (add_blank=True)
BLANK_TONE = 0

DEFAULT_LANGUAGE = "VI"

# ── Tones ───────────────────────────────────────────────────────────

# viphoneme tone (1..6) → model tone (0=ngang, 1=sắc, 2=huyền, 3=ngã, 4=hỏi, 5=nặng)
VIPHONEME_TONE_MAP: Dict[int, int] = {1: 0, 2: 2, 3: 3, 4: 4, 5: 1, 6: 5}
VI_TONE_OFFSET = 16

# ── Punctuation ─────────────────────────────────────────────────────

# Marks stripped from the end of a word and emitted as their own symbols
TRAILING_PUNCTUATION = ",.!?;:'\"()[]{}"


@dataclass(frozen=True)
class SymbolTable:
    """
    Symbol and language id maps shipped with the acoustic model.

    Immutable once loaded; one instance is owned by each engine.
    """

    symbol_to_id: Dict[str, int]
    language_id_map: Dict[str, int]
    sample_rate: int

    @property
    def boundary_id(self) -> int:
        return self.symbol_to_id.get(BOUNDARY_TOKEN, 0)

    @property
    def unk_id(self) -> int:
        return self.symbol_to_id.get(UNK_TOKEN, UNK_FALLBACK_ID)

    def id_for(self, symbol: str) -> int:
        """Resolve a phoneme/punctuation symbol, falling back to UNK."""
        return self.symbol_to_id.get(symbol, self.unk_id)

    def language_id(self, language: str = DEFAULT_LANGUAGE) -> int:
        try:
            return self.language_id_map[language]
        except KeyError:
            raise KeyError(f"Language {language!r} not in language_id_map") from None

    def __len__(self) -> int:
        return len(self.symbol_to_id)

    def to_dict(self) -> dict:
        return {
            "symbol_to_id": dict(self.symbol_to_id),
            "language_id_map": dict(self.language_id_map),
            "sample_rate": self.sample_rate,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "SymbolTable":
        """
        Validate and build a table from the parsed config document.

        Raises:
            ConfigLoadError: a required field is missing or malformed
        """
        if not isinstance(d, dict):
            raise ConfigLoadError("TTS config must be a JSON object")

        for key in ("symbol_to_id", "language_id_map", "sample_rate"):
            if key not in d:
                raise ConfigLoadError(f"TTS config is missing {key!r}")

        symbol_to_id = _int_mapping(d["symbol_to_id"], "symbol_to_id")
        language_id_map = _int_mapping(d["language_id_map"], "language_id_map")

        if BOUNDARY_TOKEN not in symbol_to_id:
            raise ConfigLoadError(f"symbol_to_id must contain boundary symbol {BOUNDARY_TOKEN!r}")
        if len(set(symbol_to_id.values())) != len(symbol_to_id):
            raise ConfigLoadError("symbol_to_id ids are not unique")
        if DEFAULT_LANGUAGE not in language_id_map:
            raise ConfigLoadError(f"language_id_map must contain {DEFAULT_LANGUAGE!r}")
        if UNK_TOKEN not in symbol_to_id:
            logger.warning(f"symbol_to_id has no {UNK_TOKEN!r}, unknown symbols map to {UNK_FALLBACK_ID}")

        sample_rate = d["sample_rate"]
        if isinstance(sample_rate, bool) or not isinstance(sample_rate, int) or sample_rate <= 0:
            raise ConfigLoadError(f"sample_rate must be a positive integer, got {sample_rate!r}")

        return cls(
            symbol_to_id=symbol_to_id,
            language_id_map=language_id_map,
            sample_rate=sample_rate,
        )


def _int_mapping(value, name: str) -> Dict[str, int]:
    if not isinstance(value, dict):
        raise ConfigLoadError(f"{name} must be an object")
    mapping = {}
    for k, v in value.items():
        if isinstance(v, bool) or not isinstance(v, int):
            raise ConfigLoadError(f"{name}[{k!r}] must be an integer, got {v!r}")
        mapping[str(k)] = v
    return mapping


def load_symbol_table(path: Union[str, Path]) -> SymbolTable:
    """
    Load the symbol table from a tts_config.json file.

    Raises:
        ConfigLoadError: file missing, not JSON, or failing validation
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigLoadError(f"TTS config not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigLoadError(f"Could not read TTS config {path}: {e}") from e

    table = SymbolTable.from_dict(data)
    logger.info(
        f"Config loaded: {len(table)} symbols, "
        f"VI language ID: {table.language_id(DEFAULT_LANGUAGE)}, "
        f"sample rate: {table.sample_rate} Hz"
    )
    return table


@dataclass
class PhonemeSequence:
    """Parallel phoneme / tone / language id arrays fed to the text encoder."""

    phoneme_ids: List[int] = field(default_factory=list)
    tone_ids: List[int] = field(default_factory=list)
    language_ids: List[int] = field(default_factory=list)

    def __post_init__(self):
        if not (len(self.phoneme_ids) == len(self.tone_ids) == len(self.language_ids)):
            raise ValueError(
                "phoneme_ids, tone_ids and language_ids must have equal length "
                f"(got {len(self.phoneme_ids)}, {len(self.tone_ids)}, {len(self.language_ids)})"
            )

    def __len__(self) -> int:
        return len(self.phoneme_ids)

    def append(self, phoneme_id: int, tone_id: int, language_id: int):
        self.phoneme_ids.append(phoneme_id)
        self.tone_ids.append(tone_id)
        self.language_ids.append(language_id)


def internal_tone(viphoneme_tone: int) -> int:
    """Map a viphoneme tone (1..6) into the model's 0..5 tone space."""
    return VIPHONEME_TONE_MAP.get(viphoneme_tone, 0)


if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("usage: python -m viet_tts.phonemes path/to/tts_config.json")
        sys.exit(1)

    table = load_symbol_table(sys.argv[1])
    print(f"Symbols:     {len(table)}")
    print(f"Boundary id: {table.boundary_id}")
    print(f"UNK id:      {table.unk_id}")
    print(f"Languages:   {table.language_id_map}")
    print(f"Sample rate: {table.sample_rate}")
