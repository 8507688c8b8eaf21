"""
Vietnamese text processing for VITS.

Turns a G2P PhonemeSequence into the blank-interleaved id streams and the
named input tensors the text encoder session expects.
"""

from typing import Dict, List, Sequence

import numpy as np

from viet_tts.phonemes import BLANK_ID, BLANK_TONE, PhonemeSequence, SymbolTable


def intersperse(lst: Sequence, item) -> List:
    """[a, b] → [item, a, item, b, item]"""
    result = [item] * (len(lst) * 2 + 1)
    result[1::2] = lst
    return result


def add_blanks(sequence: PhonemeSequence, language_id: int) -> PhonemeSequence:
    """
    Interleave blank symbols (id 0, tone 0) around every symbol.

    The model was trained with add_blank=True, so n symbols become 2n + 1.
    """
    return PhonemeSequence(
        phoneme_ids=intersperse(sequence.phoneme_ids, BLANK_ID),
        tone_ids=intersperse(sequence.tone_ids, BLANK_TONE),
        language_ids=intersperse(sequence.language_ids, language_id),
    )


def build_encoder_inputs(
    sequence: PhonemeSequence,
    speaker_id: int,
    bert_dim: int = 1024,
    ja_bert_dim: int = 768,
) -> Dict[str, np.ndarray]:
    """
    Shape a (blank-interleaved) sequence into text encoder inputs.

    BERT features are not used for Vietnamese; both embedding inputs are
    zero-filled with one column per symbol.
    """
    seq_len = len(sequence)
    return {
        "phone_ids": np.asarray([sequence.phoneme_ids], dtype=np.int64),
        "phone_lengths": np.asarray([seq_len], dtype=np.int64),
        "tone_ids": np.asarray([sequence.tone_ids], dtype=np.int64),
        "language_ids": np.asarray([sequence.language_ids], dtype=np.int64),
        "bert": np.zeros((1, bert_dim, seq_len), dtype=np.float32),
        "ja_bert": np.zeros((1, ja_bert_dim, seq_len), dtype=np.float32),
        "speaker_id": np.asarray([speaker_id], dtype=np.int64),
    }


def sequence_to_text(ids: Sequence[int], symbol_table: SymbolTable) -> str:
    """Convert an id sequence back to a symbol string (for debugging)."""
    id_to_symbol = {v: k for k, v in symbol_table.symbol_to_id.items()}
    return " ".join(id_to_symbol.get(idx, "?") for idx in ids)
