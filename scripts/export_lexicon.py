"""
Export a Vietnamese pronunciation lexicon from a text corpus.

Output format: word<TAB>phonemes (space-separated)<TAB>tone (1-6)

Usage:
    python scripts/export_lexicon.py \
        --input corpus.txt \
        --output lexicon.tsv
"""
import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from viet_tts.chunking import normalize_text
from viet_tts.g2p import generate_pronunciation_dictionary, split_trailing_punctuation


def read_words(path):
    words = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            for token in normalize_text(line).split():
                word, _ = split_trailing_punctuation(token)
                if word:
                    words.append(word)
    return words


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--input', '-i', required=True, help='UTF-8 text, any layout')
    parser.add_argument('--output', '-o', default='lexicon.tsv')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    words = read_words(args.input)
    print(f"Read {len(words)} tokens ({len(set(words))} unique) from {args.input}")

    written = generate_pronunciation_dictionary(words, args.output)
    print(f"Lexicon: {written} entries -> {args.output}")


if __name__ == '__main__':
    main()
