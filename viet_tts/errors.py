"""
Error types raised by the Vietnamese TTS front-end and inference engine.

Initialization failures (config, model sessions) are fatal to the engine;
synthesis failures abort the current call without returning partial audio.
Unknown symbols during G2P are never errors; they fall back to UNK.
"""


class TTSError(Exception):
    """Base class for all engine errors."""


class ConfigLoadError(TTSError):
    """tts_config.json is missing, unreadable or malformed."""


class ModelLoadError(TTSError):
    """An inference session could not be created."""


class NotInitializedError(TTSError):
    """synthesize() called before initialize() completed successfully."""


class EngineBusyError(TTSError):
    """Another synthesis is already running on this engine instance."""


class MissingModelOutputError(TTSError):
    """A session result lacks a required named output."""

    def __init__(self, session: str, output: str):
        self.session = session
        self.output = output
        super().__init__(f"{session} did not return required output {output!r}")
