# embedding_service/domain/models.py
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterator, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

START_TOKEN = "<s>"
PAD_TOKEN = "<pad>"
END_TOKEN = "</s>"
UNK_TOKEN = "<unk>"

# Reserved ids; these win over whatever a tokenizer file declares.
SPECIAL_TOKEN_IDS: Mapping[str, int] = MappingProxyType({
    START_TOKEN: 0,
    PAD_TOKEN: 1,
    END_TOKEN: 2,
    UNK_TOKEN: 3,
})


class Vocabulary:
    """
    Read-only token -> id mapping shared by every tokenization call.

    Built once at startup by the vocabulary loader. The special tokens are
    guaranteed to be present with their reserved ids.
    """
    __slots__ = ("_tokens", "_source")

    def __init__(self, tokens: Mapping[str, int], source: str = "file"):
        merged = dict(tokens)
        merged.update(SPECIAL_TOKEN_IDS)
        self._tokens = MappingProxyType(merged)
        self._source = source

    def get(self, token: str, default: Optional[int] = None) -> Optional[int]:
        return self._tokens.get(token, default)

    def lookup(self, word: str) -> int:
        return self._tokens.get(word, self.unk_id)

    @property
    def source(self) -> str:
        return self._source

    @property
    def start_id(self) -> int:
        return self._tokens[START_TOKEN]

    @property
    def end_id(self) -> int:
        return self._tokens[END_TOKEN]

    @property
    def pad_id(self) -> int:
        return self._tokens[PAD_TOKEN]

    @property
    def unk_id(self) -> int:
        return self._tokens[UNK_TOKEN]

    def as_mapping(self) -> Mapping[str, int]:
        return self._tokens

    def __contains__(self, token: object) -> bool:
        return token in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def __iter__(self) -> Iterator[str]:
        return iter(self._tokens)

    def __repr__(self) -> str:
        return f"Vocabulary(size={len(self._tokens)}, source={self._source!r})"


@dataclass(frozen=True)
class TokenSequence:
    """Fixed-length token ids plus the matching attention mask (1 = real token)."""
    ids: Tuple[int, ...]
    attention_mask: Tuple[int, ...]

    def __post_init__(self):
        if len(self.ids) != len(self.attention_mask):
            raise ValueError(
                f"ids and attention_mask must have equal length, got {len(self.ids)} and {len(self.attention_mask)}"
            )

    def __len__(self) -> int:
        return len(self.ids)

    @property
    def content_length(self) -> int:
        return sum(self.attention_mask)


class FailureStage(str, Enum):
    TOKENIZATION = "tokenization"
    INFERENCE = "inference"
    POOLING = "pooling"


@dataclass(frozen=True)
class EmbeddingOutcome:
    """
    Result of the single-text pipeline: either a vector or a tagged failure.

    The adapter turns failures into fallback vectors before anything leaves
    the service, so callers of embed/embed_batch only ever see vectors.
    """
    vector: Optional[List[float]] = None
    failure: Optional[FailureStage] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, vector: List[float]) -> "EmbeddingOutcome":
        return cls(vector=vector)

    @classmethod
    def failed(cls, stage: FailureStage, message: str) -> "EmbeddingOutcome":
        return cls(failure=stage, message=message)

    @property
    def is_ok(self) -> bool:
        return self.failure is None and self.vector is not None


class ModelInfo(BaseModel):
    """Information about the embedding model currently serving requests."""
    name: str = Field(alias="model_name")
    provider: Optional[str] = None
    dimension: Optional[int] = None
    max_length: Optional[int] = None
    vocabulary_size: Optional[int] = None
    vocabulary_source: Optional[str] = None

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        protected_namespaces=(),
    )
