"""
ONNX Runtime sessions for the four exported VITS sub-models.

The synthesizer is exported as four graphs run in sequence:
  text_encoder → duration_predictor → flow → decoder

Each session takes a dict of named numpy inputs and returns named outputs.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
import onnxruntime as ort

from viet_tts.errors import MissingModelOutputError, ModelLoadError

logger = logging.getLogger(__name__)

SESSION_NAMES = ("text_encoder", "duration_predictor", "flow", "decoder")
MODEL_FILES: Dict[str, str] = {name: f"{name}.onnx" for name in SESSION_NAMES}

_GRAPH_OPTIMIZATION = {
    "disable": ort.GraphOptimizationLevel.ORT_DISABLE_ALL,
    "basic": ort.GraphOptimizationLevel.ORT_ENABLE_BASIC,
    "extended": ort.GraphOptimizationLevel.ORT_ENABLE_EXTENDED,
    "all": ort.GraphOptimizationLevel.ORT_ENABLE_ALL,
}

ModelSource = Union[str, Path, bytes]
SessionFactory = Callable[[ModelSource, List[str], ort.SessionOptions], Any]


def create_session_options(
    graph_optimization: str = "basic",
    intra_op_num_threads: Optional[int] = None,
) -> ort.SessionOptions:
    """Session options shared by all four sub-models."""
    options = ort.SessionOptions()
    options.graph_optimization_level = _GRAPH_OPTIMIZATION[graph_optimization]
    if intra_op_num_threads:
        options.intra_op_num_threads = intra_op_num_threads
    options.enable_mem_pattern = True
    options.enable_mem_reuse = True
    return options


def resolve_providers(requested: Optional[List[str]] = None) -> List[str]:
    """Keep requested execution providers that this onnxruntime build offers."""
    available = ort.get_available_providers()
    requested = requested or ["CPUExecutionProvider"]

    providers = [p for p in requested if p in available]
    skipped = [p for p in requested if p not in available]
    if skipped:
        logger.warning(f"Execution providers not available, skipping: {skipped}")
    if not providers:
        providers = ["CPUExecutionProvider"]
    return providers


def create_session(
    source: ModelSource,
    providers: List[str],
    options: ort.SessionOptions,
) -> ort.InferenceSession:
    """Create an InferenceSession from a model path or serialized model bytes."""
    if isinstance(source, Path):
        source = str(source)
    return ort.InferenceSession(source, sess_options=options, providers=providers)


def run_session(session, inputs: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
    """Run a session and key its outputs by name."""
    names = [o.name for o in session.get_outputs()]
    values = session.run(None, inputs)
    return dict(zip(names, values))


def require_output(outputs: Dict[str, np.ndarray], session: str, *names: str) -> np.ndarray:
    """
    First present output among `names` (later names are fallbacks).

    Raises:
        MissingModelOutputError: none of the names is present
    """
    for name in names:
        value = outputs.get(name)
        if value is not None:
            return value
    raise MissingModelOutputError(session, " | ".join(names))


@dataclass
class ModelSessions:
    """The four loaded sessions, shared read-only across synthesis calls."""

    text_encoder: Any
    duration_predictor: Any
    flow: Any
    decoder: Any

    @classmethod
    def load(
        cls,
        sources: Dict[str, ModelSource],
        providers: Optional[List[str]] = None,
        options: Optional[ort.SessionOptions] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> "ModelSessions":
        """
        Load every sub-model.

        Args:
            sources: session name → model path or bytes
            providers: execution providers, filtered to what is available
            options: shared session options
            session_factory: replaces create_session (tests, custom runtimes)

        Raises:
            ModelLoadError: a source is missing or session creation failed
        """
        factory = session_factory or create_session
        providers = resolve_providers(providers)
        options = options or create_session_options()

        loaded = {}
        for name in SESSION_NAMES:
            if name not in sources:
                raise ModelLoadError(f"No model source given for {name}")
            source = sources[name]
            if isinstance(source, (str, Path)) and not Path(source).exists():
                raise ModelLoadError(f"Model file not found for {name}: {source}")

            try:
                loaded[name] = factory(source, providers, options)
            except Exception as e:
                raise ModelLoadError(f"Failed to load {name}: {e}") from e
            logger.info(f"  ✓ {name}")

        return cls(**loaded)

    @classmethod
    def from_directory(
        cls,
        model_dir: Union[str, Path],
        providers: Optional[List[str]] = None,
        options: Optional[ort.SessionOptions] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> "ModelSessions":
        model_dir = Path(model_dir)
        logger.info(f"Loading ONNX models from {model_dir}")
        sources = {name: model_dir / filename for name, filename in MODEL_FILES.items()}
        return cls.load(sources, providers, options, session_factory)
