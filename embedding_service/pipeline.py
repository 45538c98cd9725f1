# embedding_service/pipeline.py
"""
Public entry point of the embedding core.

    pipeline = await initialize("models/model.onnx", "models/tokenizer.json")
    vector = await pipeline.embed("a quiet thriller set in Oslo")
    vectors = await pipeline.embed_batch(titles)

initialize() fails with ModelLoadError when the model cannot be loaded. After
that, embed() and embed_batch() always return unit-norm vectors; inputs the
model could not handle get a random fallback vector, reported in the logs.
"""
import asyncio
from typing import List, Optional, Sequence, Tuple

import structlog

from embedding_service.application.use_cases.embed_texts_use_case import EmbedTextsUseCase
from embedding_service.domain.models import ModelInfo
from embedding_service.infrastructure.embedding_models.onnx_adapter import OnnxEmbeddingAdapter

log = structlog.get_logger(__name__)


class EmbeddingPipeline:
    def __init__(self, adapter: OnnxEmbeddingAdapter, use_case: Optional[EmbedTextsUseCase] = None):
        self._adapter = adapter
        self._use_case = use_case or EmbedTextsUseCase(embedding_model=adapter)

    @property
    def adapter(self) -> OnnxEmbeddingAdapter:
        return self._adapter

    async def embed(self, text: str) -> List[float]:
        return await self._adapter.embed_text(text)

    async def embed_batch(
        self,
        texts: Sequence[str],
        chunk_size: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[List[float]]:
        embeddings, _ = await self._use_case.execute(texts, chunk_size=chunk_size, cancel_event=cancel_event)
        return embeddings

    def model_info(self) -> ModelInfo:
        return ModelInfo(**self._adapter.get_model_info())

    async def health_check(self) -> Tuple[bool, str]:
        return await self._adapter.health_check()

    def close(self) -> None:
        self._adapter.close()

    async def __aenter__(self) -> "EmbeddingPipeline":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


async def initialize(
    model_path: Optional[str] = None,
    tokenizer_path: Optional[str] = None,
    max_length: Optional[int] = None,
) -> EmbeddingPipeline:
    """Loads model and vocabulary once. Unset arguments come from settings."""
    adapter = OnnxEmbeddingAdapter(model_path=model_path, tokenizer_path=tokenizer_path, max_length=max_length)
    await adapter.initialize_model()
    pipeline = EmbeddingPipeline(adapter)
    log.info("Embedding pipeline ready", **adapter.get_model_info())
    return pipeline
