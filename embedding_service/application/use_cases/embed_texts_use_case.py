# embedding_service/application/use_cases/embed_texts_use_case.py
import asyncio
import time
import structlog
from typing import List, Optional, Sequence, Tuple

from embedding_service.application.ports.embedding_model_port import BatchCancelledError, EmbeddingModelPort
from embedding_service.core.config import settings
from embedding_service.core.metrics import BATCH_PROCESSING_DURATION_SECONDS
from embedding_service.domain.models import ModelInfo

log = structlog.get_logger(__name__)

class EmbedTextsUseCase:
    """
    Use case for generating embeddings for a list of texts.

    Texts are processed in consecutive chunks. Every text of a chunk is
    embedded concurrently, chunks run one after another with a short pause
    in between, and results come back in input order.
    """
    def __init__(self, embedding_model: EmbeddingModelPort, inter_batch_delay_ms: Optional[int] = None):
        self.embedding_model = embedding_model
        self.inter_batch_delay_s = (
            inter_batch_delay_ms if inter_batch_delay_ms is not None else settings.INTER_BATCH_DELAY_MS
        ) / 1000
        log.info("EmbedTextsUseCase initialized", model_adapter=type(embedding_model).__name__)

    async def execute(
        self,
        texts: Sequence[str],
        chunk_size: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Tuple[List[List[float]], ModelInfo]:
        """
        Executes the embedding generation process.

        Args:
            texts: The strings to embed.
            chunk_size: Maximum number of texts embedded concurrently. Defaults to settings.BATCH_SIZE.
            cancel_event: Optional signal checked before each chunk.

        Returns:
            A tuple containing:
                - One embedding per input text, in input order.
                - ModelInfo object containing details about the embedding model.

        Raises:
            ValueError: If chunk_size is smaller than 1.
            BatchCancelledError: If cancel_event is set before all chunks ran.
        """
        effective_chunk_size = chunk_size if chunk_size is not None else settings.BATCH_SIZE
        if effective_chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {effective_chunk_size}")

        model_info = ModelInfo(**self.embedding_model.get_model_info())
        if not texts:
            log.debug("EmbedTextsUseCase executed with no texts.")
            return [], model_info

        total_chunks = (len(texts) + effective_chunk_size - 1) // effective_chunk_size
        use_case_log = log.bind(num_texts=len(texts), chunk_size=effective_chunk_size, total_chunks=total_chunks)
        use_case_log.info("Executing embedding generation for texts")

        start_time = time.perf_counter()
        results: List[List[float]] = []
        for chunk_index, offset in enumerate(range(0, len(texts), effective_chunk_size)):
            if cancel_event is not None and cancel_event.is_set():
                use_case_log.warning("Embedding batch cancelled", completed=len(results), chunk_index=chunk_index)
                raise BatchCancelledError(completed=results, total=len(texts))

            if chunk_index > 0 and self.inter_batch_delay_s > 0:
                await asyncio.sleep(self.inter_batch_delay_s)

            chunk = texts[offset:offset + effective_chunk_size]
            use_case_log.debug("Processing chunk", chunk_index=chunk_index, chunk_len=len(chunk))
            # gather keeps input order regardless of completion order
            chunk_results = await asyncio.gather(*(self.embedding_model.embed_text(text) for text in chunk))
            results.extend(chunk_results)

        duration = time.perf_counter() - start_time
        BATCH_PROCESSING_DURATION_SECONDS.observe(duration)
        use_case_log.info("Successfully generated embeddings", num_embeddings=len(results), duration_ms=duration * 1000)
        return results, model_info
