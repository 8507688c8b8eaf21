#!/usr/bin/env python3
"""
Vietnamese TTS Inference using ONNX-exported VITS.

End-to-end: Vietnamese text → chunking → G2P → 4 ONNX sessions → WAV audio.

Model directory layout:
    tts_config.json          symbol_to_id, language_id_map, sample_rate
    text_encoder.onnx
    duration_predictor.onnx
    flow.onnx
    decoder.onnx

Usage:
    python -m viet_vits.inference \
        --model models/vi \
        --text "Xin chào các bạn."

    python -m viet_vits.inference \
        --model models/vi \
        --interactive
"""

import argparse
import logging
import threading
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import numpy as np
from tqdm import tqdm

from viet_tts.chunking import split_text_into_chunks
from viet_tts.config import SynthesisConfig, load_config
from viet_tts.errors import (
    ConfigLoadError,
    EngineBusyError,
    NotInitializedError,
)
from viet_tts.g2p import VietnameseG2P
from viet_tts.phonemes import SymbolTable, load_symbol_table
from viet_vits.audio import assemble, save_audio, to_wav_bytes
from viet_vits.latent import compute_durations, expand_by_durations, sample_latent
from viet_vits.sessions import (
    MODEL_FILES,
    ModelSessions,
    ModelSource,
    SessionFactory,
    create_session_options,
    require_output,
    run_session,
)
from viet_vits.text_processing import add_blanks, build_encoder_inputs

logger = logging.getLogger(__name__)

CONFIG_FILE = "tts_config.json"


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    SYNTHESIZING = "synthesizing"
    FAILED = "failed"


class VietnameseVITS:
    """
    Vietnamese text-to-speech using ONNX-exported VITS.

    Usage:
        >>> tts = VietnameseVITS("models/vi")
        >>> tts.initialize()
        >>> audio = tts.synthesize("xin chào việt nam.")
        >>> tts.text_to_speech("Dòng một.\\nDòng hai.", "out.wav")

    One synthesis at a time per instance; create more instances to serve
    several voices or requests in parallel.
    """

    def __init__(
        self,
        model_dir: Optional[Union[str, Path]] = None,
        config: Optional[SynthesisConfig] = None,
        tts_config: Optional[Union[str, Path, dict]] = None,
        sources: Optional[Dict[str, ModelSource]] = None,
        session_factory: Optional[SessionFactory] = None,
        rng_factory: Optional[Callable] = None,
    ):
        """
        Args:
            model_dir: directory holding tts_config.json and the .onnx files
            config: runtime synthesis settings
            tts_config: symbol table document (dict) or path; overrides model_dir
            sources: session name → model path or bytes; overrides model_dir
            session_factory: builds a session from (source, providers, options)
            rng_factory: returns a fresh uniform [0, 1) source per synthesis
        """
        if model_dir is None and (tts_config is None or sources is None):
            raise ValueError("Give model_dir, or both tts_config and sources")

        self.model_dir = Path(model_dir) if model_dir is not None else None
        self.config = config or SynthesisConfig()
        self._tts_config = tts_config
        self._sources = sources
        self._session_factory = session_factory
        self.rng_factory = rng_factory or (lambda: np.random.default_rng(self.config.seed))

        self.symbol_table: Optional[SymbolTable] = None
        self.g2p: Optional[VietnameseG2P] = None
        self.sessions: Optional[ModelSessions] = None

        self.state = EngineState.UNINITIALIZED
        self._lock = threading.Lock()

    # ── Initialization ──────────────────────────────────────────────

    def initialize(self):
        """
        Load the symbol table and all four sessions.

        A failure leaves the engine FAILED; call initialize() again to retry.

        Raises:
            ConfigLoadError, ModelLoadError
        """
        if not self._lock.acquire(blocking=False):
            raise EngineBusyError("Cannot initialize while synthesizing")

        try:
            self.state = EngineState.INITIALIZING
            logger.info("Initializing Vietnamese VITS engine")

            self.symbol_table = self._load_symbol_table()
            self.g2p = VietnameseG2P(self.symbol_table, self.config.language)

            options = create_session_options(
                self.config.graph_optimization,
                self.config.intra_op_num_threads,
            )
            self.sessions = ModelSessions.load(
                self._model_sources(),
                providers=self.config.providers,
                options=options,
                session_factory=self._session_factory,
            )
            self.state = EngineState.READY
        except Exception:
            self.sessions = None
            self.symbol_table = None
            self.g2p = None
            self.state = EngineState.FAILED
            logger.exception("Initialization failed")
            raise
        finally:
            self._lock.release()

        logger.info(f"All models loaded, sample rate {self.sample_rate} Hz")

    def _load_symbol_table(self) -> SymbolTable:
        source = self._tts_config
        if source is None:
            source = self.model_dir / CONFIG_FILE
        table = SymbolTable.from_dict(source) if isinstance(source, dict) else load_symbol_table(source)

        if self.config.language not in table.language_id_map:
            raise ConfigLoadError(f"Language {self.config.language!r} not in language_id_map")
        return table

    def _model_sources(self) -> Dict[str, ModelSource]:
        sources: Dict[str, ModelSource] = {}
        if self.model_dir is not None:
            sources.update({name: self.model_dir / f for name, f in MODEL_FILES.items()})
        if self._sources:
            sources.update(self._sources)
        return sources

    @property
    def is_ready(self) -> bool:
        return self.state is EngineState.READY

    @property
    def sample_rate(self) -> int:
        if self.symbol_table is None:
            raise NotInitializedError("TTS engine not initialized")
        return self.symbol_table.sample_rate

    def close(self):
        """Drop the sessions and symbol table; initialize() must be called again before use."""
        with self._lock:
            self.sessions = None
            self.symbol_table = None
            self.g2p = None
            self.state = EngineState.UNINITIALIZED
        logger.info("Sessions closed")

    @contextmanager
    def _busy(self):
        if not self._lock.acquire(blocking=False):
            raise EngineBusyError("A synthesis is already running on this engine")
        try:
            if self.state is not EngineState.READY:
                raise NotInitializedError(f"TTS engine not initialized (state: {self.state.value})")
            self.state = EngineState.SYNTHESIZING
            try:
                yield
            finally:
                self.state = EngineState.READY
        finally:
            self._lock.release()

    # ── Synthesis ───────────────────────────────────────────────────

    def synthesize(
        self,
        text: str,
        speaker_id: Optional[int] = None,
        noise_scale: Optional[float] = None,
        length_scale: Optional[float] = None,
    ) -> np.ndarray:
        """
        Synthesize one utterance (no chunking).

        Args:
            text: normalized Vietnamese text
            speaker_id: speaker embedding index
            noise_scale: prior sampling temperature (lower = more stable)
            length_scale: speech speed (1.0 = normal, >1 = slower)

        Returns:
            float32 waveform in [-1, 1] at self.sample_rate

        Raises:
            NotInitializedError, EngineBusyError, MissingModelOutputError
        """
        with self._busy():
            return self._synthesize(text, speaker_id, noise_scale, length_scale, self.rng_factory())

    def synthesize_long(
        self,
        text: str,
        speaker_id: Optional[int] = None,
        noise_scale: Optional[float] = None,
        length_scale: Optional[float] = None,
        show_progress: bool = False,
    ) -> np.ndarray:
        """
        Synthesize arbitrary text: chunk it, synthesize each chunk in order,
        and join the chunks with their pauses.
        """
        cfg = self.config
        chunks = split_text_into_chunks(
            text,
            max_words_per_chunk=cfg.max_words_per_chunk,
            short_silence=cfg.short_silence,
            long_silence=cfg.long_silence,
        )
        logger.info(f"Split text into {len(chunks)} chunks")

        with self._busy():
            rng = self.rng_factory()
            segments: List = []
            for chunk in tqdm(chunks, desc="Synthesizing", disable=not show_progress):
                if chunk.text:
                    segments.append(
                        self._synthesize(chunk.text, speaker_id, noise_scale, length_scale, rng)
                    )
                if chunk.silence_after > 0:
                    segments.append(chunk.silence_after)

            audio = assemble(segments, self.sample_rate)

        logger.info(f"Generated {len(audio)} samples ({len(audio) / self.sample_rate:.2f}s)")
        return audio

    def _synthesize(
        self,
        text: str,
        speaker_id: Optional[int],
        noise_scale: Optional[float],
        length_scale: Optional[float],
        rng,
    ) -> np.ndarray:
        cfg = self.config
        speaker_id = cfg.speaker_id if speaker_id is None else speaker_id
        noise_scale = cfg.noise_scale if noise_scale is None else noise_scale
        length_scale = cfg.length_scale if length_scale is None else length_scale
        if length_scale <= 0:
            raise ValueError(f"length_scale must be positive, got {length_scale}")

        logger.info(f"Synthesizing: {text!r}")

        # G2P
        seq = self.g2p.text_to_phonemes(text)
        seq = add_blanks(seq, self.g2p.language_id)
        logger.info(f"Phonemes with blanks: {len(seq)}")

        # Text encoder
        inputs = build_encoder_inputs(seq, speaker_id, cfg.bert_dim, cfg.ja_bert_dim)
        enc = run_session(self.sessions.text_encoder, inputs)
        x = require_output(enc, "text_encoder", "x_encoded")
        x_mask = require_output(enc, "text_encoder", "x_mask")
        g = require_output(enc, "text_encoder", "g")
        m_p = require_output(enc, "text_encoder", "m_p")
        logs_p = require_output(enc, "text_encoder", "logs_p")
        logger.debug(f"Encoder output shapes: x {x.shape}, m_p {m_p.shape}, g {g.shape}")

        # Durations
        dp = run_session(self.sessions.duration_predictor, {"x": x, "x_mask": x_mask, "g": g})
        logw = require_output(dp, "duration_predictor", "logw")
        durations, total_frames = compute_durations(logw, x_mask, length_scale)
        logger.info(f"Total frames: {total_frames}")

        # Prior sampling
        m_p = expand_by_durations(m_p, durations, total_frames)
        logs_p = expand_by_durations(logs_p, durations, total_frames)
        z_p = sample_latent(m_p, logs_p, noise_scale, rng, cfg.noise_distribution)[np.newaxis]
        y_mask = np.ones((1, 1, total_frames), dtype=np.float32)

        # Flow (reverse) + decoder
        flow = run_session(self.sessions.flow, {"z_p": z_p, "y_mask": y_mask, "g": g})
        z = require_output(flow, "flow", "z")

        dec = run_session(self.sessions.decoder, {"z": z, "g": g})
        audio = require_output(dec, "decoder", "audio", "output_0")

        audio = np.clip(np.asarray(audio, dtype=np.float32).reshape(-1), -1.0, 1.0)
        logger.info(f"Generated {len(audio)} samples ({len(audio) / self.sample_rate:.2f}s)")
        return audio

    # ── Output ──────────────────────────────────────────────────────

    def text_to_speech(
        self,
        text: str,
        output_path: Optional[str] = None,
        **kwargs,
    ) -> np.ndarray:
        """
        Convert Vietnamese text to speech, optionally saving a WAV file.

        Returns:
            float32 waveform at self.sample_rate
        """
        if not text.strip():
            return np.array([], dtype=np.float32)

        audio = self.synthesize_long(text, **kwargs)
        if output_path:
            save_audio(audio, output_path, self.sample_rate)
        return audio

    def to_wav_bytes(self, text: str, **kwargs) -> bytes:
        """Synthesize text into an in-memory 16-bit PCM WAV file."""
        return to_wav_bytes(self.synthesize_long(text, **kwargs), self.sample_rate)

    def batch_text_to_speech(self, texts: List[str], output_dir: str) -> List[Path]:
        """Convert multiple texts, saving each to output_dir/."""
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        paths = []
        for i, text in enumerate(tqdm(texts, desc="Texts")):
            path = out / f"vi_{i:03d}.wav"
            self.text_to_speech(text, str(path))
            paths.append(path)
        return paths


# ── CLI ─────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="Vietnamese VITS Inference (ONNX)")
    parser.add_argument("--model", "-m", required=True, help="Model directory")
    parser.add_argument("--text", "-t", help="Vietnamese text")
    parser.add_argument("--text-file", "-f", help="File with texts (one per line)")
    parser.add_argument("--output", "-o", default="output_vi.wav")
    parser.add_argument("--config", "-c", help="SynthesisConfig JSON")
    parser.add_argument("--speaker", type=int)
    parser.add_argument("--noise-scale", type=float)
    parser.add_argument("--length-scale", type=float)
    parser.add_argument("--noise", choices=["gaussian", "uniform"])
    parser.add_argument("--seed", type=int)
    parser.add_argument("--max-words", type=int)
    parser.add_argument("--interactive", "-i", action="store_true")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    overrides = {
        "speaker_id": args.speaker,
        "noise_scale": args.noise_scale,
        "length_scale": args.length_scale,
        "noise_distribution": args.noise,
        "seed": args.seed,
        "max_words_per_chunk": args.max_words,
    }
    base = load_config(args.config).to_dict() if args.config else {}
    base.update({k: v for k, v in overrides.items() if v is not None})
    config = SynthesisConfig.from_dict(base)

    tts = VietnameseVITS(model_dir=args.model, config=config)
    tts.initialize()

    if args.interactive:
        print("Interactive Vietnamese TTS (type 'quit' to exit)")
        count = 0
        while True:
            text = input("\nVăn bản: ").strip()
            if text.lower() in ("quit", "exit", "q"):
                break
            if text:
                out = f"vi_{count:03d}.wav"
                count += 1
                tts.text_to_speech(text, out, show_progress=True)
                print(f"Saved: {out}")

    elif args.text:
        tts.text_to_speech(args.text, args.output, show_progress=True)

    elif args.text_file:
        with open(args.text_file, "r", encoding="utf-8") as f:
            texts = [l.strip() for l in f if l.strip()]
        out_dir = Path(args.output).parent if Path(args.output).suffix else args.output
        tts.batch_text_to_speech(texts, str(out_dir))

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
