"""Tests for loading the tokenizer vocabulary and its built-in fallback."""

import pytest
from prometheus_client import REGISTRY

from embedding_service.domain.models import SPECIAL_TOKEN_IDS
from embedding_service.infrastructure.tokenization.vocabulary_loader import (
    DEFAULT_VOCABULARY_CHARS,
    build_default_vocabulary,
    load_vocabulary,
)


def _fallback_count() -> float:
    return REGISTRY.get_sample_value("embedding_vocabulary_fallback_total") or 0.0


def assert_special_tokens(vocabulary) -> None:
    for token, reserved_id in SPECIAL_TOKEN_IDS.items():
        assert vocabulary.get(token) == reserved_id


def test_loads_model_vocab_mapping(write_tokenizer) -> None:
    path = write_tokenizer({"version": "1.0", "model": {"type": "WordPiece", "vocab": {"hello": 10, "world": 11}}})

    vocabulary = load_vocabulary(path)

    assert vocabulary.source == "file"
    assert vocabulary.get("hello") == 10
    assert vocabulary.get("world") == 11
    assert len(vocabulary) == 6
    assert_special_tokens(vocabulary)


def test_conflicting_special_token_ids_are_overridden(write_tokenizer) -> None:
    path = write_tokenizer({"model": {"vocab": {"<s>": 5, "<pad>": 0, "</s>": 2, "word": 7}}})

    vocabulary = load_vocabulary(path)

    assert_special_tokens(vocabulary)
    assert vocabulary.get("word") == 7


def test_accepts_path_objects(tmp_path) -> None:
    path = tmp_path / "tokenizer.json"
    path.write_text('{"model": {"vocab": {"abc": 9}}}', encoding="utf-8")

    assert load_vocabulary(path).get("abc") == 9


@pytest.mark.parametrize(
    "document",
    [
        "{not json",
        "[1, 2, 3]",
        {"vocab": {"hello": 1}},
        {"model": {"type": "BPE"}},
        {"model": {"vocab": ["hello", "world"]}},
        {"model": {"vocab": {"hello": "ten"}}},
        {"model": {"vocab": {"hello": -1}}},
        {"model": {"vocab": {"hello": True}}},
        {"model": "vocab"},
    ],
)
def test_malformed_files_fall_back_to_builtin(write_tokenizer, document) -> None:
    before = _fallback_count()

    vocabulary = load_vocabulary(write_tokenizer(document))

    assert vocabulary.source == "builtin"
    assert_special_tokens(vocabulary)
    assert _fallback_count() == before + 1


def test_missing_file_falls_back_to_builtin(tmp_path) -> None:
    vocabulary = load_vocabulary(tmp_path / "does-not-exist.json")

    assert vocabulary.source == "builtin"
    assert_special_tokens(vocabulary)


def test_builtin_vocabulary_layout() -> None:
    vocabulary = build_default_vocabulary()

    assert len(vocabulary) == len(SPECIAL_TOKEN_IDS) + len(DEFAULT_VOCABULARY_CHARS)
    assert vocabulary.get("a") == 4
    assert vocabulary.get("z") == 29
    assert vocabulary.get("0") == 30
    assert vocabulary.get("-") == 4 + len(DEFAULT_VOCABULARY_CHARS) - 1
    assert_special_tokens(vocabulary)


def test_vocabulary_is_read_only(vocabulary) -> None:
    with pytest.raises(TypeError):
        vocabulary.as_mapping()["new"] = 99
