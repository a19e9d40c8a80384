import os
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import numpy as np
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


class ModelStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ModelState:
    status: ModelStatus
    model: Optional[Any] = None
    reason: Optional[str] = None


LOADING = ModelState(ModelStatus.LOADING)


class ModelHandle:
    """Process-wide reference to the classifier.

    Starts in the loading state and moves to ready or failed exactly once;
    after that the state never changes until restart.
    """

    def __init__(self, state: ModelState = LOADING):
        self._state = state

    @property
    def state(self) -> ModelState:
        return self._state

    def mark_ready(self, model) -> None:
        self._transition(ModelState(ModelStatus.READY, model=model))

    def mark_failed(self, reason: str) -> None:
        self._transition(ModelState(ModelStatus.FAILED, reason=reason))

    def _transition(self, state: ModelState) -> None:
        if self._state.status is not ModelStatus.LOADING:
            raise RuntimeError(f"Model already {self._state.status.value}")
        self._state = state


def download_model(bucket: str, key: str, destination: str, endpoint_url: Optional[str] = None) -> str:
    """Fetch one object from the bucket to a local path. Single attempt."""
    import boto3

    parent = os.path.dirname(destination)
    if parent:
        os.makedirs(parent, exist_ok=True)
    s3_client = boto3.client("s3", endpoint_url=endpoint_url)
    logger.info("Downloading s3://%s/%s to %s", bucket, key, destination)
    s3_client.download_file(bucket, key, destination)
    return destination


class OnnxClassifier:
    """Binary classifier backed by an ONNX Runtime session."""

    def __init__(self, session):
        self.session = session
        model_input = session.get_inputs()[0]
        self.input_name = model_input.name
        self.output_name = session.get_outputs()[0].name
        # NCHW models declare 3 channels on axis 1, NHWC on the last axis
        shape = list(model_input.shape)
        self.channels_first = len(shape) == 4 and shape[1] == 3 and shape[-1] != 3

    @classmethod
    def from_path(cls, path: str) -> "OnnxClassifier":
        import onnxruntime as ort

        if not os.path.exists(path):
            raise FileNotFoundError(f"Model file not found at {path}")

        providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        try:
            session = ort.InferenceSession(path, providers=providers)
        except Exception:
            logger.warning("Falling back to CPUExecutionProvider for %s", path)
            session = ort.InferenceSession(path, providers=["CPUExecutionProvider"])
        return cls(session)

    def predict(self, batch: np.ndarray) -> float:
        outputs = self.session.run([self.output_name], {self.input_name: batch})
        return float(np.ravel(outputs[0])[0])


async def load(
    handle: ModelHandle,
    model_path: str,
    bucket: Optional[str] = None,
    object_key: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> ModelState:
    """Populate the handle once. Failures are logged and recorded, never raised."""
    try:
        if bucket:
            await run_in_threadpool(download_model, bucket, object_key, model_path, endpoint_url)
        logger.info("Loading model from %s", model_path)
        model = await run_in_threadpool(OnnxClassifier.from_path, model_path)
    except Exception as e:
        logger.exception("Failed to load model")
        handle.mark_failed(f"{type(e).__name__}: {e}")
    else:
        handle.mark_ready(model)
        logger.info("Model loaded successfully")
    return handle.state
