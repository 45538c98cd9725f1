"""
Shared pytest fixtures for the embedding service test suite.

A real ONNX export is large, so the inference engine is driven by
FakeOnnxSession: it mimics the parts of onnxruntime.InferenceSession the
engine touches (run, get_inputs, get_outputs) and produces hidden states
that depend only on the token ids, which keeps every embedding deterministic.
"""

import json
from types import SimpleNamespace
from typing import Optional

import numpy as np
import pytest

from embedding_service.application.use_cases.embed_texts_use_case import EmbedTextsUseCase
from embedding_service.domain.models import SPECIAL_TOKEN_IDS, Vocabulary
from embedding_service.infrastructure.embedding_models.onnx_adapter import EmbeddingResources, OnnxEmbeddingAdapter
from embedding_service.infrastructure.embedding_models.onnx_inference_engine import OnnxInferenceEngine
from embedding_service.pipeline import EmbeddingPipeline

DIMENSION = 8
MAX_LENGTH = 16

WORDS = ["the", "quick", "brown", "fox", "jumps", "over", "lazy", "dog", "boom"]


class FakeOnnxSession:
    """Stand-in for onnxruntime.InferenceSession."""

    def __init__(
        self,
        dimension: int = DIMENSION,
        static_dimension: bool = True,
        fail_on_token: Optional[int] = None,
        always_fail: bool = False,
        output_dimension: Optional[int] = None,
    ):
        self.dimension = dimension
        self.static_dimension = static_dimension
        self.fail_on_token = fail_on_token
        self.always_fail = always_fail
        self.output_dimension = output_dimension or dimension
        self.calls = []

    def get_inputs(self):
        return [
            SimpleNamespace(name="input_ids", shape=["batch", "sequence"]),
            SimpleNamespace(name="attention_mask", shape=["batch", "sequence"]),
        ]

    def get_outputs(self):
        last = self.dimension if self.static_dimension else "hidden"
        return [SimpleNamespace(name="last_hidden_state", shape=["batch", "sequence", last])]

    def run(self, output_names, feeds):
        ids = feeds["input_ids"]
        self.calls.append(ids.copy())
        if self.always_fail:
            raise RuntimeError("simulated onnxruntime failure")
        if self.fail_on_token is not None and (ids == self.fail_on_token).any():
            raise RuntimeError(f"simulated failure on token {self.fail_on_token}")
        scale = np.arange(1, self.output_dimension + 1, dtype=np.float32)
        hidden = np.cos(ids[..., None].astype(np.float32) * 0.37 * scale) + 0.05 * scale
        return [hidden.astype(np.float32)]


def make_vocabulary() -> Vocabulary:
    tokens = dict(SPECIAL_TOKEN_IDS)
    for offset, word in enumerate(WORDS):
        tokens[word] = len(SPECIAL_TOKEN_IDS) + offset
    return Vocabulary(tokens, source="file")


def make_adapter(session: FakeOnnxSession, dimension: int = DIMENSION, seed: int = 0) -> OnnxEmbeddingAdapter:
    resources = EmbeddingResources(
        vocabulary=make_vocabulary(),
        engine=OnnxInferenceEngine(session, model_path="fake.onnx"),
        max_length=MAX_LENGTH,
        dimension=dimension,
        model_name="fake-encoder",
    )
    return OnnxEmbeddingAdapter(
        max_length=MAX_LENGTH,
        dimension=dimension,
        model_name="fake-encoder",
        resources=resources,
        rng=np.random.default_rng(seed),
    )


@pytest.fixture
def vocabulary() -> Vocabulary:
    return make_vocabulary()


@pytest.fixture
def fake_session() -> FakeOnnxSession:
    return FakeOnnxSession()


@pytest.fixture
def adapter(fake_session) -> OnnxEmbeddingAdapter:
    return make_adapter(fake_session)


@pytest.fixture
def pipeline(adapter) -> EmbeddingPipeline:
    return EmbeddingPipeline(adapter, EmbedTextsUseCase(embedding_model=adapter, inter_batch_delay_ms=0))


@pytest.fixture
def write_tokenizer(tmp_path):
    """Writes a tokenizer definition to tmp_path and returns its path."""

    def _writer(document, name: str = "tokenizer.json") -> str:
        path = tmp_path / name
        if isinstance(document, str):
            path.write_text(document, encoding="utf-8")
        else:
            path.write_text(json.dumps(document), encoding="utf-8")
        return str(path)

    return _writer
