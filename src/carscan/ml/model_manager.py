"""Model manager: download, load and memoize ONNX models.

Handles downloading models and their label configs from HuggingFace and
creating ONNX InferenceSessions. Each model is initialized at most once per
process; concurrent first callers wait on a per-model latch and then share
the same handle.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from carscan.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def get_model(self, model_name: str) -> LoadedModel:
        """Return the memoized model handle, loading it on first use."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Drop all loaded models."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


class ModelTask(StrEnum):
    OBJECT_DETECTION = "object_detection"
    IMAGE_CLASSIFICATION = "image_classification"


IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX model on the Hub.

    ``input_size`` is the square side for classifiers and the shortest edge
    for detectors; ``max_size`` caps the longest edge of detector inputs.
    """

    name: str
    repo_id: str
    filename: str
    config_filename: str
    task: ModelTask
    license: str
    input_size: int
    image_mean: tuple[float, float, float]
    image_std: tuple[float, float, float]
    max_size: int | None = None


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "detr_resnet50": ModelSpec(
        name="detr_resnet50",
        repo_id="Xenova/detr-resnet-50",
        filename="onnx/model.onnx",
        config_filename="config.json",
        task=ModelTask.OBJECT_DETECTION,
        license="Apache-2.0",
        input_size=800,
        max_size=1333,
        image_mean=IMAGENET_MEAN,
        image_std=IMAGENET_STD,
    ),
    "yolos_tiny": ModelSpec(
        name="yolos_tiny",
        repo_id="Xenova/yolos-tiny",
        filename="onnx/model.onnx",
        config_filename="config.json",
        task=ModelTask.OBJECT_DETECTION,
        license="Apache-2.0",
        input_size=512,
        max_size=1333,
        image_mean=IMAGENET_MEAN,
        image_std=IMAGENET_STD,
    ),
    "vit_base_patch16_224": ModelSpec(
        name="vit_base_patch16_224",
        repo_id="Xenova/vit-base-patch16-224",
        filename="onnx/model.onnx",
        config_filename="config.json",
        task=ModelTask.IMAGE_CLASSIFICATION,
        license="Apache-2.0",
        input_size=224,
        image_mean=(0.5, 0.5, 0.5),
        image_std=(0.5, 0.5, 0.5),
    ),
    "resnet50": ModelSpec(
        name="resnet50",
        repo_id="Xenova/resnet-50",
        filename="onnx/model.onnx",
        config_filename="config.json",
        task=ModelTask.IMAGE_CLASSIFICATION,
        license="Apache-2.0",
        input_size=224,
        image_mean=IMAGENET_MEAN,
        image_std=IMAGENET_STD,
    ),
}


def get_spec(model_name: str) -> ModelSpec:
    """Look up a registry entry by name."""
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoadedModel:
    """A ready-to-run model: its spec, ONNX session and class labels."""

    spec: ModelSpec
    session: InferenceSession
    labels: dict[int, str]

    @property
    def input_names(self) -> list[str]:
        return [node.name for node in self.session.get_inputs()]


class OnnxModelManager:
    """Downloads and loads ONNX models, memoizing them for the process lifetime."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._models: dict[str, LoadedModel] = {}
        self._init_locks: dict[str, threading.Lock] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def get_model(self, model_name: str) -> LoadedModel:
        """Return the loaded model, initializing it on first use.

        Raises:
            KeyError: If the model is not in the registry.
        """
        spec = get_spec(model_name)
        with self._lock:
            loaded = self._models.get(model_name)
            if loaded is not None:
                return loaded
            init_lock = self._init_locks.setdefault(model_name, threading.Lock())

        with init_lock:
            # Another caller may have finished loading while we waited.
            with self._lock:
                loaded = self._models.get(model_name)
            if loaded is not None:
                return loaded

            loaded = self._load(spec)
            with self._lock:
                self._models[model_name] = loaded
            logger.info("Loaded %s (%s, %d labels)", model_name, spec.task, len(loaded.labels))
            return loaded

    def get_loaded_models(self) -> list[str]:
        """Return names of models with active sessions."""
        with self._lock:
            return list(self._models.keys())

    def shutdown(self) -> None:
        """Drop all loaded models."""
        with self._lock:
            self._models.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    def _download(self, spec: ModelSpec, filename: str) -> Path:
        downloaded = Path(
            hf_hub_download(
                repo_id=spec.repo_id,
                filename=filename,
                local_dir=str(self._models_dir / spec.name),
            )
        )
        logger.info("Fetched %s/%s to %s", spec.repo_id, filename, downloaded)
        return downloaded

    def _load(self, spec: ModelSpec) -> LoadedModel:
        model_path = self._download(spec, spec.filename)
        config_path = self._download(spec, spec.config_filename)
        labels = _read_labels(config_path)

        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )
        return LoadedModel(spec=spec, session=session, labels=labels)

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts


def _read_labels(config_path: Path) -> dict[int, str]:
    """Read the ``id2label`` mapping from a transformers-style config.json."""
    with config_path.open(encoding="utf-8") as fh:
        config = json.load(fh)
    try:
        id2label = config["id2label"]
    except KeyError:
        raise ValueError(f"{config_path} has no id2label mapping") from None
    return {int(idx): str(label) for idx, label in id2label.items()}
