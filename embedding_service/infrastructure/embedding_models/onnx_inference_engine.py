# embedding_service/infrastructure/embedding_models/onnx_inference_engine.py
import os
import time
from typing import Any, Optional, Sequence

import numpy as np
import onnxruntime as ort
import structlog
from tenacity import Retrying, stop_after_attempt, wait_exponential

from embedding_service.application.ports.embedding_model_port import InferenceError, ModelLoadError
from embedding_service.core.metrics import INFERENCE_DURATION_SECONDS
from embedding_service.domain.models import TokenSequence

log = structlog.get_logger(__name__)

INPUT_IDS = "input_ids"
ATTENTION_MASK = "attention_mask"


class OnnxInferenceEngine:
    """
    Thin wrapper over an ONNX Runtime session running a sequence encoder.

    The session is never mutated after construction; ONNX Runtime allows
    concurrent run() calls on the same session, so one engine is shared by
    every in-flight embedding.
    """

    def __init__(self, session: Any, model_path: Optional[str] = None):
        self._session = session
        self._model_path = model_path

    @classmethod
    def load(
        cls,
        model_path: str,
        intra_op_threads: Optional[int] = None,
        inter_op_threads: Optional[int] = None,
        load_retries: int = 0,
    ) -> "OnnxInferenceEngine":
        """
        Creates the inference session. Raises ModelLoadError if the model
        file is missing or the session cannot be built.
        """
        cpu_count = os.cpu_count() or 1
        intra = intra_op_threads or cpu_count
        inter = inter_op_threads or cpu_count
        init_log = log.bind(action="load_model", model_path=model_path, intra_op_threads=intra, inter_op_threads=inter)

        if not os.path.isfile(model_path):
            init_log.critical("ONNX model file not found")
            raise ModelLoadError(f"ONNX model not found at '{model_path}'")

        options = ort.SessionOptions()
        options.intra_op_num_threads = intra
        options.inter_op_num_threads = inter
        options.execution_mode = ort.ExecutionMode.ORT_PARALLEL
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

        init_log.info("Creating ONNX Runtime session...")
        start_time = time.perf_counter()
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(load_retries + 1),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                reraise=True,
                before_sleep=lambda retry_state: init_log.warning(
                    "Retrying ONNX session creation",
                    attempt_number=retry_state.attempt_number,
                    error=str(retry_state.outcome.exception()) if retry_state.outcome else "Unknown error",
                ),
            ):
                with attempt:
                    session = ort.InferenceSession(
                        model_path,
                        sess_options=options,
                        providers=["CPUExecutionProvider"],
                    )
        except Exception as e:
            init_log.critical("Failed to create ONNX Runtime session", error=str(e), exc_info=True)
            raise ModelLoadError(f"Failed to load ONNX model '{model_path}': {e}") from e

        engine = cls(session, model_path=model_path)
        duration_ms = (time.perf_counter() - start_time) * 1000
        init_log.info("ONNX Runtime session ready", duration_ms=duration_ms, output_dimension=engine.output_dimension)
        engine._warn_on_unexpected_inputs()
        return engine

    @property
    def model_path(self) -> Optional[str]:
        return self._model_path

    @property
    def output_dimension(self) -> Optional[int]:
        """Static hidden size of the first output, or None if the model leaves it symbolic."""
        try:
            shape = self._session.get_outputs()[0].shape
        except Exception:
            return None
        if shape and isinstance(shape[-1], int) and shape[-1] > 0:
            return shape[-1]
        return None

    def _warn_on_unexpected_inputs(self) -> None:
        try:
            names = [node.name for node in self._session.get_inputs()]
        except Exception:
            return
        extra = [name for name in names if name not in (INPUT_IDS, ATTENTION_MASK)]
        if extra:
            log.warning(
                "Model declares inputs that will not be fed; runs may fail",
                unexpected_inputs=extra,
                model_path=self._model_path,
            )

    def run(self, input_ids: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        """
        Runs the encoder on a (batch, L) batch and returns (batch, L, D) hidden states.
        """
        ids = np.asarray(input_ids, dtype=np.int64)
        mask = np.asarray(attention_mask, dtype=np.int64)
        if ids.ndim != 2 or ids.shape != mask.shape or ids.shape[0] == 0:
            raise InferenceError(
                f"input_ids and attention_mask must be equal non-empty (batch, L) arrays, got {ids.shape} and {mask.shape}"
            )

        try:
            with INFERENCE_DURATION_SECONDS.time():
                outputs = self._session.run(None, {INPUT_IDS: ids, ATTENTION_MASK: mask})
        except Exception as e:
            raise InferenceError(f"ONNX Runtime inference failed: {e}") from e

        if not outputs:
            raise InferenceError("ONNX Runtime returned no outputs")
        hidden_states = np.asarray(outputs[0])
        if hidden_states.ndim != 3 or hidden_states.shape[:2] != ids.shape:
            raise InferenceError(
                f"Expected hidden states shaped ({ids.shape[0]}, {ids.shape[1]}, D), got {hidden_states.shape}"
            )
        return hidden_states

    def run_sequences(self, sequences: Sequence[TokenSequence]) -> np.ndarray:
        if not sequences:
            raise InferenceError("Cannot run inference on an empty batch")
        lengths = {len(sequence) for sequence in sequences}
        if len(lengths) != 1:
            raise InferenceError(f"All sequences in a batch must share one length, got {sorted(lengths)}")
        ids = np.array([sequence.ids for sequence in sequences], dtype=np.int64)
        mask = np.array([sequence.attention_mask for sequence in sequences], dtype=np.int64)
        return self.run(ids, mask)

    def close(self) -> None:
        self._session = None
        log.debug("ONNX Runtime session released", model_path=self._model_path)
