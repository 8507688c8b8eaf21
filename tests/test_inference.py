"""
Tests for the VietnameseVITS engine over fake ONNX sessions.

The fake models predict 2 frames per symbol and the fake decoder emits HOP
samples per frame, so output lengths are exact.
"""

import json
import sys
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest

from viet_tts.chunking import split_text_into_chunks
from viet_tts.config import SynthesisConfig
from viet_tts.errors import (
    ConfigLoadError,
    EngineBusyError,
    MissingModelOutputError,
    ModelLoadError,
    NotInitializedError,
)
from viet_tts.g2p import VietnameseG2P
from viet_vits.inference import CONFIG_FILE, EngineState, VietnameseVITS, main
from viet_vits.sessions import MODEL_FILES
from viet_vits.text_processing import add_blanks

from conftest import HOP, SAMPLE_RATE, byte_sources, make_factory, make_fake_sessions


def blanked_length(symbol_table, text):
    g2p = VietnameseG2P(symbol_table)
    return len(add_blanks(g2p.text_to_phonemes(text), g2p.language_id))


class TestLifecycle:

    def test_synthesize_before_initialize(self, make_engine):
        engine = make_engine(initialize=False)
        assert engine.state is EngineState.UNINITIALIZED
        with pytest.raises(NotInitializedError):
            engine.synthesize("xin chào")
        with pytest.raises(NotInitializedError):
            engine.sample_rate

    def test_initialize(self, engine):
        assert engine.state is EngineState.READY
        assert engine.is_ready
        assert engine.sample_rate == SAMPLE_RATE

    def test_close(self, engine):
        engine.close()
        assert engine.state is EngineState.UNINITIALIZED
        assert engine.sessions is None
        assert engine.symbol_table is None
        with pytest.raises(NotInitializedError):
            engine.sample_rate
        with pytest.raises(NotInitializedError):
            engine.synthesize("xin chào")

    def test_requires_model_source(self):
        with pytest.raises(ValueError):
            VietnameseVITS(tts_config={"symbol_to_id": {}})


class TestInitFailures:

    def test_bad_config(self, tts_config_dict, fake_sessions):
        bad = dict(tts_config_dict)
        del bad["sample_rate"]
        engine = VietnameseVITS(
            config=SynthesisConfig(),
            tts_config=bad,
            sources=byte_sources(),
            session_factory=make_factory(fake_sessions),
        )
        with pytest.raises(ConfigLoadError):
            engine.initialize()
        assert engine.state is EngineState.FAILED
        with pytest.raises(NotInitializedError):
            engine.synthesize("xin chào")

    def test_unknown_language(self, tts_config_dict, fake_sessions):
        engine = VietnameseVITS(
            config=SynthesisConfig(language="XX"),
            tts_config=tts_config_dict,
            sources=byte_sources(),
            session_factory=make_factory(fake_sessions),
        )
        with pytest.raises(ConfigLoadError):
            engine.initialize()
        assert engine.state is EngineState.FAILED

    def test_retry_after_session_failure(self, tts_config_dict, fake_sessions):
        attempts = {"n": 0}
        factory = make_factory(fake_sessions)

        def flaky(source, providers, options):
            if source == b"flow" and attempts["n"] == 0:
                attempts["n"] += 1
                raise RuntimeError("out of memory")
            return factory(source, providers, options)

        engine = VietnameseVITS(
            tts_config=tts_config_dict, sources=byte_sources(), session_factory=flaky
        )
        with pytest.raises(ModelLoadError):
            engine.initialize()
        assert engine.state is EngineState.FAILED
        assert engine.sessions is None
        with pytest.raises(NotInitializedError):
            engine.sample_rate

        engine.initialize()
        assert engine.state is EngineState.READY


class TestSynthesize:

    def test_output_length(self, engine, symbol_table):
        text = "xin chào các bạn."
        audio = engine.synthesize(text)

        assert audio.dtype == np.float32
        assert audio.ndim == 1
        assert len(audio) == HOP * 2 * blanked_length(symbol_table, text)
        assert np.all(np.abs(audio) <= 1.0)
        assert engine.state is EngineState.READY

    def test_length_scale_slows_speech(self, engine, symbol_table):
        text = "xin chào"
        audio = engine.synthesize(text, length_scale=2.0)
        assert len(audio) == HOP * 3 * blanked_length(symbol_table, text)

    def test_invalid_length_scale(self, engine):
        with pytest.raises(ValueError):
            engine.synthesize("xin chào", length_scale=0.0)
        assert engine.state is EngineState.READY

    def test_seeded_output_is_reproducible(self, engine):
        a = engine.synthesize("tôi là người việt nam")
        b = engine.synthesize("tôi là người việt nam")
        np.testing.assert_array_equal(a, b)

    def test_different_seeds_differ(self, make_engine):
        a = make_engine(config=SynthesisConfig(seed=1)).synthesize("tôi là người việt nam")
        b = make_engine(config=SynthesisConfig(seed=2)).synthesize("tôi là người việt nam")
        assert len(a) == len(b)
        assert not np.array_equal(a, b)

    def test_zero_noise_is_deterministic_without_seed(self, make_engine):
        engine = make_engine(config=SynthesisConfig(noise_scale=0.0))
        np.testing.assert_array_equal(engine.synthesize("xin"), engine.synthesize("xin"))

    def test_injected_noise_source(self, make_engine):
        class Midpoint:
            def random(self, size):
                return np.full(size, 0.5)

        engine = make_engine(config=SynthesisConfig())
        engine.rng_factory = Midpoint
        a = engine.synthesize("xin chào")
        b = engine.synthesize("xin chào")
        np.testing.assert_array_equal(a, b)

    def test_encoder_inputs(self, engine, fake_sessions, symbol_table):
        engine.synthesize("xin chào", speaker_id=3)
        feed = fake_sessions["text_encoder"].calls[-1]
        length = blanked_length(symbol_table, "xin chào")

        assert feed["phone_ids"].shape == (1, length)
        assert feed["phone_lengths"].tolist() == [length]
        assert feed["speaker_id"].tolist() == [3]
        assert feed["bert"].shape == (1, 1024, length)
        assert feed["ja_bert"].shape == (1, 768, length)
        assert feed["phone_ids"][0, ::2].tolist() == [0] * ((length + 1) // 2)

    def test_flow_and_decoder_inputs(self, engine, fake_sessions, symbol_table):
        engine.synthesize("xin chào")
        frames = 2 * blanked_length(symbol_table, "xin chào")

        flow_feed = fake_sessions["flow"].calls[-1]
        assert flow_feed["z_p"].shape == (1, 4, frames)
        assert flow_feed["z_p"].dtype == np.float32
        np.testing.assert_array_equal(flow_feed["y_mask"], np.ones((1, 1, frames)))

        dec_feed = fake_sessions["decoder"].calls[-1]
        assert set(dec_feed) == {"z", "g"}

    def test_uniform_noise(self, make_engine, symbol_table):
        engine = make_engine(config=SynthesisConfig(noise_distribution="uniform", seed=5))
        audio = engine.synthesize("xin chào")
        assert len(audio) == HOP * 2 * blanked_length(symbol_table, "xin chào")


class TestMissingOutputs:

    def test_missing_speaker_embedding(self, make_engine):
        engine = make_engine(sessions=make_fake_sessions(drop=("g",)))
        with pytest.raises(MissingModelOutputError) as exc:
            engine.synthesize("xin chào")
        assert exc.value.session == "text_encoder"
        assert engine.state is EngineState.READY

    def test_missing_logw(self, make_engine):
        engine = make_engine(sessions=make_fake_sessions(drop=("logw",)))
        with pytest.raises(MissingModelOutputError):
            engine.synthesize("xin chào")

    def test_decoder_fallback_output_name(self, make_engine):
        engine = make_engine(sessions=make_fake_sessions(decoder_output="output_0"))
        assert len(engine.synthesize("xin chào")) > 0

    def test_decoder_without_audio(self, make_engine):
        engine = make_engine(sessions=make_fake_sessions(drop=("audio",)))
        with pytest.raises(MissingModelOutputError) as exc:
            engine.synthesize("xin chào")
        assert exc.value.session == "decoder"


class TestConcurrency:

    def test_busy_engine_rejects_calls(self, engine):
        engine._lock.acquire()
        try:
            with pytest.raises(EngineBusyError):
                engine.synthesize("xin chào")
            with pytest.raises(EngineBusyError):
                engine.initialize()
        finally:
            engine._lock.release()

        assert len(engine.synthesize("xin chào")) > 0


class TestLongForm:

    def test_chunks_and_pauses(self, engine):
        text = "Xin chào. Tôi là ai."
        chunks = split_text_into_chunks(text)
        audio = engine.synthesize_long(text)

        assert [c.silence_after for c in chunks] == [0.2, 0.2]
        first = engine.synthesize(chunks[0].text)
        second = engine.synthesize(chunks[1].text)

        pause = int(0.2 * SAMPLE_RATE)
        assert len(audio) == len(first) + pause + len(second) + pause
        assert not audio[len(first):len(first) + pause].any()

    def test_line_breaks(self, engine):
        text = "xin\n\nchào"
        chunks = split_text_into_chunks(text)
        audio = engine.synthesize_long(text)

        speech = sum(len(engine.synthesize(c.text)) for c in chunks if c.text)
        pauses = sum(int(round(c.silence_after * SAMPLE_RATE)) for c in chunks)
        assert pauses >= 2 * int(0.5 * SAMPLE_RATE)
        assert len(audio) == speech + pauses

    def test_numbers_are_spoken(self, engine, fake_sessions, symbol_table):
        engine.synthesize_long("Năm 2024 có 3 người.")
        for feed in fake_sessions["text_encoder"].calls:
            assert symbol_table.unk_id not in feed["phone_ids"]

    def test_empty_text(self, engine):
        assert engine.synthesize_long("").shape == (0,)


class TestOutput:

    def test_text_to_speech_writes_wav(self, engine, tmp_path):
        out = tmp_path / "out.wav"
        audio = engine.text_to_speech("Xin chào các bạn.", str(out))
        assert out.exists()
        assert len(audio) > 0

    def test_text_to_speech_empty(self, engine, tmp_path):
        out = tmp_path / "out.wav"
        audio = engine.text_to_speech("   ", str(out))
        assert audio.shape == (0,)
        assert not out.exists()

    def test_to_wav_bytes(self, engine):
        data = engine.to_wav_bytes("xin chào.")
        assert data[:4] == b"RIFF"
        assert data[8:12] == b"WAVE"

    def test_batch(self, engine, tmp_path):
        paths = engine.batch_text_to_speech(["xin chào.", "tạm biệt."], str(tmp_path / "batch"))
        assert [p.name for p in paths] == ["vi_000.wav", "vi_001.wav"]
        assert all(p.exists() for p in paths)


def write_model_dir(path, tts_config_dict):
    (path / CONFIG_FILE).write_text(json.dumps(tts_config_dict), encoding="utf-8")
    for filename in MODEL_FILES.values():
        (path / filename).write_bytes(b"onnx")


def stem_factory(sessions):
    def factory(source, providers, options):
        return sessions[Path(source).stem]
    return factory


class TestModelDirectory:

    def test_load_from_directory(self, tmp_path, tts_config_dict):
        write_model_dir(tmp_path, tts_config_dict)
        engine = VietnameseVITS(
            model_dir=tmp_path, session_factory=stem_factory(make_fake_sessions())
        )
        engine.initialize()
        assert engine.is_ready
        assert len(engine.synthesize("xin chào")) > 0

    def test_missing_config_file(self, tmp_path):
        engine = VietnameseVITS(model_dir=tmp_path)
        with pytest.raises(ConfigLoadError):
            engine.initialize()
        assert engine.state is EngineState.FAILED

    def test_cli(self, tmp_path, tts_config_dict):
        write_model_dir(tmp_path, tts_config_dict)
        out = tmp_path / "cli.wav"
        argv = ["viet-tts", "--model", str(tmp_path), "--text", "Xin chào.",
                "--output", str(out), "--seed", "3"]

        with patch("viet_vits.sessions.create_session", stem_factory(make_fake_sessions())), \
                patch.object(sys, "argv", argv):
            main()

        assert out.exists()

    def test_interactive_names_files_in_order(self, tmp_path, tts_config_dict, monkeypatch):
        """Repeated prompts get sequential, run-independent file names."""
        write_model_dir(tmp_path, tts_config_dict)
        monkeypatch.chdir(tmp_path)
        argv = ["viet-tts", "--model", str(tmp_path), "--interactive"]
        replies = iter(["xin chào.", "xin chào.", "tạm biệt.", "quit"])

        with patch("viet_vits.sessions.create_session", stem_factory(make_fake_sessions())), \
                patch.object(sys, "argv", argv), \
                patch("builtins.input", lambda prompt="": next(replies)):
            main()

        assert sorted(p.name for p in tmp_path.glob("vi_*.wav")) == [
            "vi_000.wav", "vi_001.wav", "vi_002.wav",
        ]
