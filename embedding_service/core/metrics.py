# File: embedding_service/core/metrics.py
from prometheus_client import Counter, Histogram

TEXTS_PROCESSED_TOTAL = Counter(
    "embedding_texts_processed_total",
    "Total number of individual texts embedded, by result quality.",
    ["status"]
)

INFERENCE_FAILURES_TOTAL = Counter(
    "embedding_inference_failures_total",
    "Total number of single-text pipeline failures replaced by a fallback vector.",
    ["stage"]
)

INFERENCE_DURATION_SECONDS = Histogram(
    "embedding_inference_duration_seconds",
    "Duration of ONNX Runtime session runs.",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5]
)

BATCH_PROCESSING_DURATION_SECONDS = Histogram(
    "embedding_batch_processing_duration_seconds",
    "Time taken to embed a full batch of texts.",
    buckets=[0.1, 0.5, 1, 2, 5, 10, 20, 30]
)

VOCABULARY_FALLBACK_TOTAL = Counter(
    "embedding_vocabulary_fallback_total",
    "Number of times the built-in vocabulary replaced an unreadable tokenizer file."
)
