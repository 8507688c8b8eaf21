#!/usr/bin/env python3
"""
Vietnamese Grapheme-to-Phoneme (G2P) Converter

Rule-based G2P for Vietnamese syllables, producing the IPA-like symbols the
Bert-VITS2 acoustic model was trained on (viphoneme conventions). Vietnamese
orthography is syllabic: every space-separated word is one syllable made of
an optional onset, a vowel nucleus, an optional coda and one tone.

Pipeline (per syllable):
  1. Unicode NFC normalization + lowercase
  2. Tone from the first tone-marked vowel (default: ngang)
  3. Onset: longest-match-first prefix (3, 2, then 1 characters)
  4. Coda: longest-match-first suffix (2, then 1) on the accent-stripped rest,
     never consuming a vowel-only suffix
  5. Nucleus: diphthong table first, then vowel-by-vowel

`VietnameseG2P.text_to_phonemes()` turns a whole utterance into the
phoneme / tone / language id sequence for the text encoder.
"""

import logging
import unicodedata
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .phonemes import (
    DEFAULT_LANGUAGE,
    TRAILING_PUNCTUATION,
    UNK_TOKEN,
    VI_TONE_OFFSET,
    PhonemeSequence,
    SymbolTable,
    internal_tone,
)

logger = logging.getLogger(__name__)


# ── Tone Marks ─────────────────────────────────────────────────────
# Each string lists the marked form of: a ă â e ê i o ô ơ u ư y

_BASE_VOWELS = "aăâeêioôơuưy"

_TONE_MARKED_VOWELS: Dict[int, str] = {
    2: "àằầèềìòồờùừỳ",   # huyền
    3: "ãẵẫẽễĩõỗỡũữỹ",   # ngã
    4: "ảẳẩẻểỉỏổởủửỷ",   # hỏi
    5: "áắấéếíóốớúứý",   # sắc
    6: "ạặậẹệịọộợụựỵ",   # nặng
}

_TONE_CHARS: Dict[str, int] = {
    ch: tone for tone, chars in _TONE_MARKED_VOWELS.items() for ch in chars
}

_ACCENT_STRIP: Dict[str, str] = {
    ch: _BASE_VOWELS[i]
    for chars in _TONE_MARKED_VOWELS.values()
    for i, ch in enumerate(chars)
}

DEFAULT_TONE = 1  # ngang

# ── Orthography → IPA Mapping ──────────────────────────────────────
# Onsets are matched longest-first, so "ngh" wins over "ng" over "n".

_ONSETS: Dict[str, str] = {
    "ngh": "ŋ",
    "ng": "ŋ",
    "nh": "ɲ",
    "ch": "c",
    "tr": "ʈ",
    "th": "tʰ",
    "ph": "f",
    "kh": "x",
    "gh": "ɣ",
    "gi": "z",
    "qu": "kw",
    "đ": "d",
    "c": "k",
    "d": "z",
    "g": "ɣ",
    "b": "b",
    "h": "h",
    "k": "k",
    "l": "l",
    "m": "m",
    "n": "n",
    "p": "p",
    "r": "r",
    "s": "s",
    "t": "t",
    "v": "v",
    "x": "s",
}

_CODAS: Dict[str, str] = {
    "ng": "ŋ",
    "nh": "ɲ",
    "ch": "k",
    "c": "k",
    "m": "m",
    "n": "n",
    "p": "p",
    "t": "t",
}

_SINGLE_VOWELS: Dict[str, str] = {
    "a": "a",
    "ă": "a",
    "â": "ə",
    "e": "ɛ",
    "ê": "e",
    "i": "i",
    "y": "i",
    "o": "ɔ",
    "ô": "o",
    "ơ": "ɤ",
    "u": "u",
    "ư": "ɯ",
}

# Checked in order; the first exact or suffix match wins.
_DIPHTHONGS: Tuple[Tuple[str, Tuple[str, str]], ...] = (
    ("ai", ("a", "j")),
    ("ay", ("a", "j")),
    ("ây", ("ə", "j")),
    ("ao", ("a", "w")),
    ("au", ("a", "w")),
    ("âu", ("ə", "w")),
    ("oi", ("ɔ", "j")),
    ("ôi", ("o", "j")),
    ("ơi", ("ɤ", "j")),
    ("ui", ("u", "j")),
    ("ưi", ("ɯ", "j")),
    ("eo", ("ɛ", "w")),
    ("êu", ("e", "w")),
    ("iu", ("i", "w")),
    ("ưu", ("ɯ", "w")),
    ("ia", ("i", "ə")),
    ("iê", ("i", "ə")),
    ("ua", ("u", "ə")),
    ("uô", ("u", "ə")),
    ("ưa", ("ɯ", "ə")),
    ("ươ", ("ɯ", "ə")),
)

_VOWEL_LETTERS = set(_BASE_VOWELS)


@dataclass(frozen=True)
class Syllable:
    """Onset / nucleus / coda decomposition of one written syllable."""

    onset: str = ""
    nucleus: Tuple[str, ...] = ()
    coda: str = ""
    tone: int = DEFAULT_TONE
    is_oov: bool = False

    @property
    def phonemes(self) -> List[str]:
        if self.is_oov:
            return [UNK_TOKEN]
        phonemes = [self.onset] if self.onset else []
        phonemes.extend(self.nucleus)
        if self.coda:
            phonemes.append(self.coda)
        return phonemes


def _normalize(word: str) -> str:
    """Unicode NFC normalization + lowercase."""
    return unicodedata.normalize("NFC", word).lower()


def strip_accents(text: str) -> str:
    """Remove tone marks, keeping vowel quality marks (ă, â, ê, ô, ơ, ư)."""
    return "".join(_ACCENT_STRIP.get(ch, ch) for ch in text)


def extract_tone(word: str) -> int:
    """Tone of the first tone-marked character, or ngang (1) if none."""
    for ch in word:
        tone = _TONE_CHARS.get(ch)
        if tone is not None:
            return tone
    return DEFAULT_TONE


def _split_onset(word: str) -> Tuple[str, str]:
    for length in (3, 2, 1):
        if len(word) >= length:
            onset = _ONSETS.get(word[:length])
            if onset is not None:
                return onset, word[length:]
    return "", word


def _split_coda(rest: str) -> Tuple[str, str]:
    clean = strip_accents(rest)
    for length in (2, 1):
        if len(clean) >= length:
            candidate = clean[-length:]
            if all(ch in _VOWEL_LETTERS for ch in candidate):
                continue
            coda = _CODAS.get(candidate)
            if coda is not None:
                return coda, rest[:-length]
    return "", rest


def _resolve_nucleus(nucleus: str) -> Optional[Tuple[str, ...]]:
    """
    Map an accent-stripped nucleus to phonemes.

    Returns None when no vowel could be found (the syllable is OOV).
    """
    for diphthong, phones in _DIPHTHONGS:
        if nucleus == diphthong or nucleus.endswith(diphthong):
            return phones

    phonemes: List[str] = []
    has_vowel = False
    for ch in nucleus:
        vowel = _SINGLE_VOWELS.get(ch)
        if vowel is not None:
            phonemes.append(vowel)
            has_vowel = True
        elif ch.isalpha():
            phonemes.append(ch)
        else:
            logger.debug(f"Dropping non-letter {ch!r} in nucleus {nucleus!r}")

    return tuple(phonemes) if has_vowel else None


def transcribe(word: str) -> Syllable:
    """Decompose one Vietnamese syllable into onset, nucleus, coda and tone."""
    w = _normalize(word)
    if not w:
        return Syllable(is_oov=True)

    tone = extract_tone(w)
    onset, rest = _split_onset(w)
    coda, rest = _split_coda(rest)
    nucleus = _resolve_nucleus(strip_accents(rest))

    if nucleus is None:
        return Syllable(tone=tone, is_oov=True)
    return Syllable(onset=onset, nucleus=nucleus, coda=coda, tone=tone)


def syllable_to_phonemes(word: str) -> Tuple[List[str], int]:
    """
    Convert a single syllable to (phonemes, viphoneme tone 1..6).

    An OOV syllable comes back as a single UNK symbol.
    """
    syllable = transcribe(word)
    return syllable.phonemes, syllable.tone


def word_to_ipa(word: str) -> str:
    """Compact IPA rendering, e.g. "việt" → "viət6"; OOV words are bracketed."""
    syllable = transcribe(word)
    if syllable.is_oov:
        return f"[{word}]"
    return "".join(syllable.phonemes) + str(syllable.tone)


def split_trailing_punctuation(word: str) -> Tuple[str, List[str]]:
    """Peel punctuation off the end of a word, keeping the marks in order."""
    trailing: List[str] = []
    while word and word[-1] in TRAILING_PUNCTUATION:
        trailing.insert(0, word[-1])
        word = word[:-1]
    return word, trailing


class VietnameseG2P:
    """
    Vietnamese grapheme-to-phoneme converter bound to a model symbol table.

    Usage:
        g2p = VietnameseG2P(symbol_table)
        seq = g2p.text_to_phonemes("xin chào việt nam.")
        seq.phoneme_ids, seq.tone_ids, seq.language_ids
    """

    def __init__(self, symbol_table: SymbolTable, language: str = DEFAULT_LANGUAGE):
        self.symbol_table = symbol_table
        self.language_id = symbol_table.language_id(language)

    def syllable_to_phonemes(self, word: str) -> Tuple[List[str], int]:
        return syllable_to_phonemes(word)

    def text_to_phonemes(self, text: str) -> PhonemeSequence:
        """
        Convert text to a boundary-wrapped phoneme / tone / language sequence.

        Tones are offset into the Vietnamese range (16..21). Punctuation,
        boundaries and OOV syllables use tone 0 (16 after offset).
        """
        table = self.symbol_table
        lang = self.language_id
        seq = PhonemeSequence()

        seq.append(table.boundary_id, VI_TONE_OFFSET, lang)

        for word in text.split():
            clean, trailing = split_trailing_punctuation(word)

            if clean:
                syllable = transcribe(clean)
                if syllable.is_oov:
                    logger.debug(f"OOV syllable {clean!r}, using {UNK_TOKEN}")
                    seq.append(table.unk_id, VI_TONE_OFFSET, lang)
                else:
                    tone = internal_tone(syllable.tone) + VI_TONE_OFFSET
                    logger.debug(
                        f"Word: {clean} -> {', '.join(syllable.phonemes)}, "
                        f"tone {syllable.tone} -> {tone - VI_TONE_OFFSET}"
                    )
                    for ph in syllable.phonemes:
                        seq.append(table.id_for(ph), tone, lang)

            for p in trailing:
                seq.append(table.id_for(p), VI_TONE_OFFSET, lang)

        seq.append(table.boundary_id, VI_TONE_OFFSET, lang)
        return seq


# ── Pronunciation Lexicon ──────────────────────────────────────────

def generate_pronunciation_dictionary(word_list: Iterable[str], output_path: str) -> int:
    """
    Write a pronunciation lexicon for a word list.

    Each line: WORD\\tPHONEME1 PHONEME2 ...\\tTONE
    OOV words are skipped. Returns the number of entries written.

    Args:
        word_list: Vietnamese syllables (punctuation is stripped)
        output_path: path to write the lexicon file
    """
    seen = set()
    written = 0

    with open(output_path, "w", encoding="utf-8") as f:
        for word in sorted({_normalize(w) for w in word_list}):
            word, _ = split_trailing_punctuation(word.strip())
            if not word or word in seen:
                continue
            seen.add(word)

            syllable = transcribe(word)
            if syllable.is_oov:
                logger.debug(f"Skipping OOV word {word!r}")
                continue
            f.write(f"{word}\t{' '.join(syllable.phonemes)}\t{syllable.tone}\n")
            written += 1

    logger.info(f"Wrote {written} lexicon entries to {output_path}")
    return written


if __name__ == "__main__":
    test_sentences = [
        "Xin chào các bạn.",
        "Tôi yêu Việt Nam!",
        "Người ta nghiêng nghiêng, chuyện gì?",
        "Trăm năm trong cõi người ta",
    ]

    print("=" * 70)
    print("Vietnamese G2P Test")
    print("=" * 70)

    for sentence in test_sentences:
        ipa = " ".join(word_to_ipa(split_trailing_punctuation(w)[0]) for w in sentence.split())
        print(f"\nText: {sentence}")
        print(f"IPA:  {ipa}")
