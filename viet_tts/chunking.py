"""
Text chunking for long-form synthesis.

Long input is cut into short utterances that the acoustic model handles well,
each followed by a pause:
  - punctuation (. ? ! , ;) ends a chunk and adds a short pause
  - a line break adds a long pause
  - a run of max_words_per_chunk words without punctuation is cut with no pause
"""

import logging
import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List

from soe_vinorm import SoeNormalizer

logger = logging.getLogger(__name__)

SHORT_SILENCE = 0.2
LONG_SILENCE = 0.5
MAX_WORDS_PER_CHUNK = 10

CHUNK_PUNCTUATION = ".?!,;"

_PUNCT_SPLIT_RE = re.compile(r"([.?!,;])")
_HSPACE_RE = re.compile(r"[^\S\n]+")
_LONE_DASH_RE = re.compile(r"(?<!\S)-(?!\S)")


@dataclass
class TextChunk:
    text: str
    silence_after: float = 0.0

    @property
    def is_silence(self) -> bool:
        return not self.text


def clean_text(text: str) -> str:
    """Unicode and whitespace cleanup, without verbalization.

    - Normalizes Unicode (NFC) and lowercases
    - Folds typographic quotes and dashes to ASCII
    - Collapses horizontal whitespace, strips each line
    - Preserves line breaks
    """
    text = unicodedata.normalize("NFC", text).lower()
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    text = text.replace("‘", "'").replace("’", "'")
    text = text.replace("“", '"').replace("”", '"')
    text = text.replace("—", "-").replace("–", "-")
    text = text.replace("…", "...")

    text = _HSPACE_RE.sub(" ", text)
    return "\n".join(line.strip() for line in text.split("\n"))


@lru_cache(maxsize=1)
def _get_normalizer() -> SoeNormalizer:
    logger.info("Loading Vietnamese text normalizer (soe-vinorm)")
    return SoeNormalizer()


def verbalize(text: str) -> str:
    """Spell out numbers, dates, units and abbreviations, one line at a time."""
    normalizer = _get_normalizer()
    lines = unicodedata.normalize("NFC", text).replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "\n".join(normalizer.normalize(line) if line.strip() else line for line in lines)


def normalize_text(text: str) -> str:
    """Normalize Vietnamese text for chunking and G2P.

    Non-standard words are verbalized first ("2024" → "hai nghìn không trăm
    hai mươi tư"), then the text is cleaned as in clean_text(). A dash
    standing alone between words becomes a comma pause. Line breaks are kept.
    """
    text = clean_text(verbalize(text))
    return _LONE_DASH_RE.sub(",", text)


def split_text_into_chunks(
    text: str,
    max_words_per_chunk: int = MAX_WORDS_PER_CHUNK,
    short_silence: float = SHORT_SILENCE,
    long_silence: float = LONG_SILENCE,
    normalizer: Callable[[str], str] = normalize_text,
) -> List[TextChunk]:
    """
    Split text into ordered chunks, each with the silence to insert after it.

    Args:
        text: raw input text
        max_words_per_chunk: cut a punctuation-free run after this many words
        short_silence: pause (seconds) after a punctuation mark
        long_silence: pause (seconds) after a line
        normalizer: text normalizer; must preserve line breaks

    Returns:
        Chunks in reading order. Pure-silence chunks have empty text.
    """
    if max_words_per_chunk < 1:
        raise ValueError(f"max_words_per_chunk must be >= 1, got {max_words_per_chunk}")

    chunks: List[TextChunk] = []
    lines = normalizer(text).split("\n")
    last = len(lines) - 1

    for i, raw_line in enumerate(lines):
        line = raw_line.strip()
        if not line:
            if i < last:
                chunks.append(TextChunk("", long_silence))
            continue

        words: List[str] = []
        for part in _PUNCT_SPLIT_RE.split(line):
            if not part:
                continue

            if part in CHUNK_PUNCTUATION:
                if words:
                    chunks.append(TextChunk(" ".join(words) + part, short_silence))
                    words = []
                elif chunks:
                    # mark right after another mark or at line start
                    chunks[-1].text += part
                    chunks[-1].silence_after = max(chunks[-1].silence_after, short_silence)
                continue

            for word in part.split():
                words.append(word)
                if len(words) == max_words_per_chunk:
                    chunks.append(TextChunk(" ".join(words), 0.0))
                    words = []

        if words:
            chunks.append(TextChunk(" ".join(words), 0.0))

        if i < last:
            chunks.append(TextChunk("", long_silence))

    return [c for c in chunks if c.text or c.silence_after > 0]
