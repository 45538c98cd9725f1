# File: embedding_service/main.py
import sys
import json
import asyncio
import structlog
from typing import Any, Dict, Generator, Iterable, List, TextIO, Tuple

# Configurar logging primero que nada
from embedding_service.core.logging_config import setup_logging
setup_logging()

from embedding_service.core.config import settings
from embedding_service.pipeline import EmbeddingPipeline, initialize

log = structlog.get_logger(__name__)

def main():
    """Reads JSON lines from stdin and writes one JSON line with its vector per input."""
    log.info("Initializing Embedding Worker...")
    try:
        pipeline = asyncio.run(initialize())
    except Exception as e:
        log.critical("Failed to initialize worker dependencies", error=str(e), exc_info=True)
        sys.exit(1)

    log.info("Worker initialized successfully. Starting consumption loop...")
    try:
        for line_batch in batch_lines(sys.stdin, batch_size=settings.WORKER_BATCH_SIZE):
            process_line_batch(line_batch, pipeline, sys.stdout)
    except KeyboardInterrupt:
        log.info("Shutdown signal received.")
    finally:
        log.info("Closing worker resources...")
        pipeline.close()
        sys.stdout.flush()
        log.info("Worker shut down gracefully.")

def batch_lines(lines: Iterable[str], batch_size: int) -> Generator[List[str], None, None]:
    """Groups non-blank input lines into lists of at most batch_size."""
    batch = []
    for line in lines:
        if not line.strip():
            continue
        batch.append(line)
        if len(batch) >= batch_size:
            yield batch; batch = []
    if batch:
        yield batch

def parse_line_batch(line_batch: List[str]) -> Tuple[List[str], List[Dict[str, Any]]]:
    batch_log = log.bind(batch_size=len(line_batch))
    texts_to_embed, metadata_list = [], []
    for line_number, line in enumerate(line_batch):
        try:
            event_data = json.loads(line)
        except json.JSONDecodeError:
            batch_log.error("Failed to decode input line", line_number=line_number)
            continue
        if isinstance(event_data, dict) and isinstance(event_data.get("text"), str):
            texts_to_embed.append(event_data["text"])
            metadata_list.append(event_data)
        else:
            batch_log.warning("Skipping line with missing or non-string 'text' field", line_number=line_number)
    return texts_to_embed, metadata_list

def process_line_batch(line_batch: List[str], pipeline: EmbeddingPipeline, output: TextIO):
    batch_log = log.bind(batch_size=len(line_batch))
    texts_to_embed, metadata_list = parse_line_batch(line_batch)

    if not texts_to_embed:
        batch_log.debug("No valid texts to embed in this batch.")
        return

    embeddings = asyncio.run(pipeline.embed_batch(texts_to_embed, chunk_size=settings.BATCH_SIZE))
    if len(embeddings) != len(metadata_list):
        batch_log.error("Mismatch in embedding results count.", expected=len(metadata_list), got=len(embeddings))
        return

    for meta, vector in zip(metadata_list, embeddings):
        output_payload = dict(meta)
        output_payload["vector"] = vector
        output.write(json.dumps(output_payload) + "\n")

    batch_log.info(f"Processed and wrote {len(embeddings)} embeddings.")

if __name__ == "__main__":
    main()
