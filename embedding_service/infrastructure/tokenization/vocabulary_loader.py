# embedding_service/infrastructure/tokenization/vocabulary_loader.py
import json
import pathlib
from typing import Any, Dict, Mapping, Union

import structlog

from embedding_service.core.metrics import VOCABULARY_FALLBACK_TOTAL
from embedding_service.domain.models import SPECIAL_TOKEN_IDS, Vocabulary

log = structlog.get_logger(__name__)

DEFAULT_VOCABULARY_CHARS = "abcdefghijklmnopqrstuvwxyz0123456789 .,!?-"


class VocabularyFormatError(ValueError):
    """The tokenizer file parsed but does not contain a usable model.vocab mapping."""
    pass


def build_default_vocabulary() -> Vocabulary:
    """Minimal vocabulary: special tokens plus single characters, ids from 4 upward."""
    tokens: Dict[str, int] = dict(SPECIAL_TOKEN_IDS)
    first_id = len(SPECIAL_TOKEN_IDS)
    for offset, char in enumerate(DEFAULT_VOCABULARY_CHARS):
        tokens[char] = first_id + offset
    return Vocabulary(tokens, source="builtin")


def _extract_vocab(document: Any) -> Dict[str, int]:
    if not isinstance(document, dict):
        raise VocabularyFormatError(f"Top-level JSON value must be an object, got {type(document).__name__}")
    model = document.get("model")
    if not isinstance(model, dict):
        raise VocabularyFormatError("Missing 'model' object")
    vocab = model.get("vocab")
    if not isinstance(vocab, dict):
        raise VocabularyFormatError("Missing 'model.vocab' mapping")

    tokens: Dict[str, int] = {}
    for token, token_id in vocab.items():
        # bool is an int subclass; reject it explicitly
        if isinstance(token_id, bool) or not isinstance(token_id, int) or token_id < 0:
            raise VocabularyFormatError(f"Token {token!r} has invalid id {token_id!r}")
        tokens[token] = token_id
    return tokens


def _reserve_special_tokens(tokens: Mapping[str, int], source_path: str) -> None:
    """Warn about every special token whose file id differs from the reserved one."""
    for token, reserved_id in SPECIAL_TOKEN_IDS.items():
        file_id = tokens.get(token)
        if file_id is None:
            log.debug("Special token missing from tokenizer file, inserting", token=token, reserved_id=reserved_id, path=source_path)
        elif file_id != reserved_id:
            log.warning(
                "Overriding special token id from tokenizer file",
                token=token,
                file_id=file_id,
                reserved_id=reserved_id,
                path=source_path,
            )


def load_vocabulary(tokenizer_path: Union[str, pathlib.Path]) -> Vocabulary:
    """
    Loads the vocabulary from a tokenizer definition (JSON with model.vocab).

    Never raises: any read, parse or structure problem is logged and the
    built-in vocabulary is returned instead. In both cases the special tokens
    end up with their reserved ids.
    """
    path = str(tokenizer_path)
    load_log = log.bind(action="load_vocabulary", path=path)
    try:
        raw = pathlib.Path(path).read_text(encoding="utf-8")
        tokens = _extract_vocab(json.loads(raw))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, VocabularyFormatError) as e:
        load_log.warning("Tokenizer file unusable, falling back to built-in vocabulary", error=str(e), error_type=type(e).__name__)
        VOCABULARY_FALLBACK_TOTAL.inc()
        return build_default_vocabulary()

    _reserve_special_tokens(tokens, path)
    vocabulary = Vocabulary(tokens, source="file")
    load_log.info("Vocabulary loaded from tokenizer file", vocabulary_size=len(vocabulary))
    return vocabulary
