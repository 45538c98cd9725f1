"""End-to-end tests of the public embed/embed_batch surface."""

import asyncio

import numpy as np
import pytest

from embedding_service.application.ports.embedding_model_port import ModelLoadError
from embedding_service.application.use_cases.embed_texts_use_case import EmbedTextsUseCase
from embedding_service.infrastructure.embedding_models.onnx_inference_engine import OnnxInferenceEngine
from embedding_service.pipeline import EmbeddingPipeline, initialize

from conftest import DIMENSION, FakeOnnxSession, make_adapter, make_vocabulary


def test_embed_batch_matches_individual_embeddings(pipeline) -> None:
    texts = ["the quick brown fox", "lazy dog jumps over"]

    async def scenario():
        batch = await pipeline.embed_batch(texts)
        singles = [await pipeline.embed(text) for text in texts]
        return batch, singles

    batch, singles = asyncio.run(scenario())

    assert len(batch) == 2
    np.testing.assert_allclose(batch[0], singles[0], atol=1e-6)
    np.testing.assert_allclose(batch[1], singles[1], atol=1e-6)
    assert not np.allclose(batch[0], batch[1])


def test_embed_batch_empty_list(pipeline) -> None:
    assert asyncio.run(pipeline.embed_batch([])) == []


def test_embed_batch_preserves_length_across_chunks(pipeline) -> None:
    texts = [f"the dog {i}" for i in range(50)]

    vectors = asyncio.run(pipeline.embed_batch(texts, chunk_size=8))

    assert len(vectors) == 50
    for vector in vectors:
        assert len(vector) == DIMENSION
        assert abs(np.linalg.norm(vector) - 1.0) < 1e-5


def test_failing_text_does_not_abort_siblings() -> None:
    boom_id = make_vocabulary().get("boom")
    adapter = make_adapter(FakeOnnxSession(fail_on_token=boom_id))
    pipeline = EmbeddingPipeline(adapter, EmbedTextsUseCase(adapter, inter_batch_delay_ms=0))

    async def scenario():
        batch = await pipeline.embed_batch(["quick fox", "boom", "lazy dog"], chunk_size=3)
        expected = [await pipeline.embed("quick fox"), await pipeline.embed("lazy dog")]
        return batch, expected

    batch, expected = asyncio.run(scenario())

    assert len(batch) == 3
    np.testing.assert_allclose(batch[0], expected[0], atol=1e-6)
    np.testing.assert_allclose(batch[2], expected[1], atol=1e-6)
    assert len(batch[1]) == DIMENSION
    assert abs(np.linalg.norm(batch[1]) - 1.0) < 1e-5


def test_model_info_and_health(pipeline) -> None:
    info = pipeline.model_info()
    healthy, _ = asyncio.run(pipeline.health_check())

    assert info.name == "fake-encoder"
    assert info.dimension == DIMENSION
    assert healthy is True


def test_initialize_builds_ready_pipeline(monkeypatch, write_tokenizer) -> None:
    monkeypatch.setattr(OnnxInferenceEngine, "load", classmethod(lambda cls, path, **kwargs: cls(FakeOnnxSession(dimension=768), path)))
    tokenizer_path = write_tokenizer({"model": {"vocab": {"hello": 10, "world": 11}}})

    async def scenario():
        async with await initialize("fake.onnx", tokenizer_path, max_length=32) as pipeline:
            vector = await pipeline.embed("Hello world")
            info = pipeline.model_info()
        return pipeline, vector, info

    pipeline, vector, info = asyncio.run(scenario())

    assert len(vector) == 768
    assert abs(np.linalg.norm(vector) - 1.0) < 1e-5
    assert info.max_length == 32
    assert info.vocabulary_source == "file"
    assert pipeline.adapter.resources.engine.model_path == "fake.onnx"


def test_initialize_fails_without_model(tmp_path) -> None:
    with pytest.raises(ModelLoadError):
        asyncio.run(initialize(str(tmp_path / "missing.onnx"), str(tmp_path / "tokenizer.json")))
