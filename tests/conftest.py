"""
Shared test fixtures for the Vietnamese VITS TTS tests.

Provides a realistic symbol table and in-memory fake ONNX sessions that
produce real numpy arrays with the exported models' shapes, so the whole
pipeline runs without model weights.
"""

import os

os.environ.setdefault("TESTING", "1")

from types import SimpleNamespace

import numpy as np
import pytest

from viet_tts.config import SynthesisConfig
from viet_tts.phonemes import SymbolTable
from viet_vits.inference import VietnameseVITS
from viet_vits.sessions import SESSION_NAMES


SYMBOLS = (
    ["_", ",", ".", "!", "?", ";", ":", "'", '"', "(", ")", "[", "]", "{", "}"]
    + ["a", "ə", "ɛ", "e", "i", "ɔ", "o", "ɤ", "u", "ɯ", "j", "w"]
    + ["b", "c", "d", "f", "h", "k", "l", "m", "n", "p", "r", "s", "t", "v", "x", "z"]
    + ["ŋ", "ɲ", "ʈ", "tʰ", "ɣ", "kw"]
    + ["UNK"]
)

LANGUAGES = {"ZH": 0, "JP": 1, "EN": 2, "ZH_MIX_EN": 3, "KR": 4, "ES": 5, "SP": 6, "VI": 7}
SAMPLE_RATE = 24000

CHANNELS = 4     # prior channels (m_p / logs_p)
HIDDEN = 8       # encoder hidden size
GIN = 16         # speaker conditioning size
HOP = 4          # samples per frame produced by the fake decoder
DURATION = 1.2   # exp(logw) per symbol → 2 frames each


# --- Symbol tables ---

@pytest.fixture
def tts_config_dict():
    return {
        "symbol_to_id": {s: i for i, s in enumerate(SYMBOLS)},
        "language_id_map": dict(LANGUAGES),
        "sample_rate": SAMPLE_RATE,
    }


@pytest.fixture
def symbol_table(tts_config_dict):
    return SymbolTable.from_dict(tts_config_dict)


@pytest.fixture
def symbol_table_no_unk(tts_config_dict):
    d = dict(tts_config_dict)
    d["symbol_to_id"] = {s: i for s, i in d["symbol_to_id"].items() if s != "UNK"}
    return SymbolTable.from_dict(d)


# --- Fake sessions ---

class FakeSession:
    """Mimics onnxruntime.InferenceSession.get_outputs()/run()."""

    def __init__(self, fn, output_names):
        self.fn = fn
        self.output_names = list(output_names)
        self.calls = []

    def get_outputs(self):
        return [SimpleNamespace(name=n) for n in self.output_names]

    def run(self, output_names, input_feed):
        self.calls.append(input_feed)
        outputs = self.fn(input_feed)
        return [outputs[n] for n in self.output_names]


def _encode(feed):
    length = feed["phone_ids"].shape[1]
    t = np.arange(length, dtype=np.float32)
    c = np.arange(CHANNELS, dtype=np.float32)[:, None]
    return {
        "x_encoded": np.zeros((1, HIDDEN, length), dtype=np.float32),
        "m_p": (0.01 * t + 0.1 * c)[np.newaxis].astype(np.float32),
        "logs_p": np.full((1, CHANNELS, length), -1.0, dtype=np.float32),
        "x_mask": np.ones((1, 1, length), dtype=np.float32),
        "g": np.full((1, GIN, 1), 0.1, dtype=np.float32),
    }


def _predict_durations(feed):
    length = feed["x"].shape[2]
    return {"logw": np.full((1, 1, length), np.log(DURATION), dtype=np.float32)}


def _flow(feed):
    return {"z": feed["z_p"] * 0.5}


def _decode(feed):
    frames = np.repeat(feed["z"].mean(axis=1), HOP, axis=-1)
    return {"audio": np.tanh(frames)[:, np.newaxis, :].astype(np.float32)}


def make_fake_sessions(drop=(), decoder_output="audio"):
    """Build the four fake sessions, optionally omitting some output names."""
    encoder_outputs = [n for n in ("x_encoded", "m_p", "logs_p", "x_mask", "g") if n not in drop]

    def decode(feed):
        return {decoder_output: _decode(feed)["audio"]}

    return {
        "text_encoder": FakeSession(_encode, encoder_outputs),
        "duration_predictor": FakeSession(
            _predict_durations, [n for n in ("logw",) if n not in drop]
        ),
        "flow": FakeSession(_flow, [n for n in ("z",) if n not in drop]),
        "decoder": FakeSession(decode, [decoder_output] if decoder_output not in drop else []),
    }


def make_factory(sessions):
    """Session factory resolving b"<session name>" sources to fake sessions."""
    def factory(source, providers, options):
        return sessions[source.decode()]
    return factory


def byte_sources():
    return {name: name.encode() for name in SESSION_NAMES}


@pytest.fixture
def fake_sessions():
    return make_fake_sessions()


@pytest.fixture
def make_engine(tts_config_dict):
    """Build an initialized engine over fake sessions."""
    def _make(sessions=None, config=None, initialize=True):
        sessions = sessions or make_fake_sessions()
        engine = VietnameseVITS(
            config=config or SynthesisConfig(seed=1234),
            tts_config=tts_config_dict,
            sources=byte_sources(),
            session_factory=make_factory(sessions),
        )
        if initialize:
            engine.initialize()
        return engine
    return _make


@pytest.fixture
def engine(make_engine, fake_sessions):
    return make_engine(sessions=fake_sessions)
