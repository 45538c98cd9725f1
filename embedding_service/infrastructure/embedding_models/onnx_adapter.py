# embedding_service/infrastructure/embedding_models/onnx_adapter.py
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import structlog

from embedding_service.application.ports.embedding_model_port import EmbeddingModelPort, ModelLoadError
from embedding_service.core.config import settings
from embedding_service.core.metrics import INFERENCE_FAILURES_TOTAL, TEXTS_PROCESSED_TOTAL
from embedding_service.domain.models import EmbeddingOutcome, FailureStage, Vocabulary
from embedding_service.infrastructure.embedding_models.onnx_inference_engine import OnnxInferenceEngine
from embedding_service.infrastructure.embedding_models.vector_ops import l2_normalize, mean_pool, random_unit_vector
from embedding_service.infrastructure.tokenization.tokenizer import tokenize
from embedding_service.infrastructure.tokenization.vocabulary_loader import load_vocabulary

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EmbeddingResources:
    """Everything the per-text pipeline reads. Built once, shared by reference, never mutated."""
    vocabulary: Vocabulary
    engine: OnnxInferenceEngine
    max_length: int
    dimension: int
    model_name: str


class OnnxEmbeddingAdapter(EmbeddingModelPort):
    """
    Adapter running a local ONNX encoder: tokenize, infer, mean-pool, normalize.

    Per-text failures never escape embed_text; they are logged as degraded and
    replaced with a random unit vector of the right dimension.
    """
    _resources: Optional[EmbeddingResources] = None
    _model_loaded: bool = False
    _model_load_error: Optional[str] = None

    def __init__(
        self,
        model_path: Optional[str] = None,
        tokenizer_path: Optional[str] = None,
        max_length: Optional[int] = None,
        dimension: Optional[int] = None,
        model_name: Optional[str] = None,
        resources: Optional[EmbeddingResources] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self._model_path = model_path or settings.MODEL_PATH
        self._tokenizer_path = tokenizer_path or settings.TOKENIZER_PATH
        self._max_length = max_length if max_length is not None else settings.MAX_LENGTH
        self._dimension = dimension if dimension is not None else settings.EMBEDDING_DIMENSION
        self._model_name = model_name or settings.MODEL_NAME
        self._rng = rng if rng is not None else np.random.default_rng()

        if self._max_length < 2:
            raise ValueError(f"max_length must be at least 2, got {self._max_length}")

        if resources is not None:
            self._resources = resources
            self._model_loaded = True

        log.info(
            "OnnxEmbeddingAdapter instance created",
            model_path=self._model_path,
            tokenizer_path=self._tokenizer_path,
            max_length=self._max_length,
            target_dimension=self._dimension,
            preloaded=resources is not None,
        )

    @property
    def resources(self) -> Optional[EmbeddingResources]:
        return self._resources

    async def initialize_model(self):
        if self._model_loaded:
            log.debug("ONNX model already initialized.", model_path=self._model_path)
            return

        init_log = log.bind(adapter="OnnxEmbeddingAdapter", action="initialize_model", model_path=self._model_path)
        init_log.info("Initializing ONNX embedding model...")
        start_time = time.perf_counter()

        try:
            engine = await asyncio.to_thread(
                OnnxInferenceEngine.load,
                self._model_path,
                intra_op_threads=settings.ORT_INTRA_OP_THREADS,
                inter_op_threads=settings.ORT_INTER_OP_THREADS,
                load_retries=settings.MODEL_LOAD_RETRIES,
            )
        except ModelLoadError as e:
            self._model_load_error = str(e)
            self._model_loaded = False
            raise

        dimension = self._resolve_dimension(engine, init_log)
        vocabulary = await asyncio.to_thread(load_vocabulary, self._tokenizer_path)

        self._resources = EmbeddingResources(
            vocabulary=vocabulary,
            engine=engine,
            max_length=self._max_length,
            dimension=dimension,
            model_name=self._model_name,
        )
        self._model_loaded = True
        self._model_load_error = None
        duration_ms = (time.perf_counter() - start_time) * 1000
        init_log.info(
            "ONNX embedding model initialized.",
            duration_ms=duration_ms,
            dimension=dimension,
            vocabulary_size=len(vocabulary),
            vocabulary_source=vocabulary.source,
        )

    def _resolve_dimension(self, engine: OnnxInferenceEngine, init_log) -> int:
        model_dimension = engine.output_dimension
        if model_dimension is None or model_dimension == self._dimension:
            return self._dimension

        message = (
            f"ONNX model dimension mismatch. EMBEDDING_DIMENSION is {self._dimension}, "
            f"but model '{self._model_path}' outputs {model_dimension} dimensions."
        )
        if settings.STRICT_DIMENSION:
            self._model_load_error = message
            init_log.critical(message)
            engine.close()
            raise ModelLoadError(message)
        init_log.warning(message + " Using the model's dimension.")
        return model_dimension

    def compute_embedding(self, text: str) -> EmbeddingOutcome:
        """Runs tokenize -> infer -> pool -> normalize, reporting the failing stage instead of raising."""
        resources = self._resources
        if resources is None:
            return EmbeddingOutcome.failed(FailureStage.INFERENCE, "model not initialized")

        try:
            sequence = tokenize(text, resources.vocabulary, resources.max_length)
        except Exception as e:
            return EmbeddingOutcome.failed(FailureStage.TOKENIZATION, str(e))

        try:
            hidden_states = resources.engine.run_sequences([sequence])
        except Exception as e:
            return EmbeddingOutcome.failed(FailureStage.INFERENCE, str(e))

        try:
            vector = l2_normalize(mean_pool(hidden_states, sequence.attention_mask))
        except Exception as e:
            return EmbeddingOutcome.failed(FailureStage.POOLING, str(e))

        if vector.shape[0] != resources.dimension:
            return EmbeddingOutcome.failed(
                FailureStage.POOLING,
                f"pooled vector has {vector.shape[0]} dimensions, expected {resources.dimension}",
            )
        if not np.all(np.isfinite(vector)):
            return EmbeddingOutcome.failed(FailureStage.POOLING, "pooled vector contains non-finite values")
        return EmbeddingOutcome.ok(vector.tolist())

    def fallback_embedding(self) -> List[float]:
        dimension = self._resources.dimension if self._resources else self._dimension
        return random_unit_vector(dimension, self._rng).tolist()

    async def embed_text(self, text: str) -> List[float]:
        if not self._model_loaded or self._resources is None:
            log.error("ONNX model not loaded. Cannot generate embeddings.", model_error=self._model_load_error)
            raise ConnectionError(f"ONNX embedding model is not available. Load error: {self._model_load_error}")

        outcome = await asyncio.to_thread(self.compute_embedding, text)
        if outcome.is_ok:
            TEXTS_PROCESSED_TOTAL.labels(status="real").inc()
            return outcome.vector

        log.warning(
            "Embedding pipeline failed, returning random fallback vector",
            degraded=True,
            stage=outcome.failure.value,
            error=outcome.message,
            text_length=len(text or ""),
        )
        INFERENCE_FAILURES_TOTAL.labels(stage=outcome.failure.value).inc()
        TEXTS_PROCESSED_TOTAL.labels(status="fallback").inc()
        return self.fallback_embedding()

    def get_model_info(self) -> Dict[str, Any]:
        resources = self._resources
        return {
            "model_name": self._model_name,
            "dimension": resources.dimension if resources else self._dimension,
            "max_length": self._max_length,
            "vocabulary_size": len(resources.vocabulary) if resources else None,
            "vocabulary_source": resources.vocabulary.source if resources else None,
            "provider": "onnx",
        }

    async def health_check(self) -> Tuple[bool, str]:
        if self._model_loaded and self._resources is not None:
            outcome = await asyncio.to_thread(self.compute_embedding, "health check")
            if outcome.is_ok:
                return True, f"ONNX model '{self._model_name}' loaded and responsive."
            log.error("ONNX model health check failed during test embedding", stage=outcome.failure.value, error=outcome.message)
            return False, f"ONNX model '{self._model_name}' loaded but unresponsive: {outcome.message}"
        elif self._model_load_error:
            return False, f"ONNX model '{self._model_name}' failed to load: {self._model_load_error}"
        else:
            return False, f"ONNX model '{self._model_name}' not loaded."

    def close(self) -> None:
        if self._resources is not None:
            self._resources.engine.close()
        self._model_loaded = False
        log.info("OnnxEmbeddingAdapter closed.", model_path=self._model_path)
