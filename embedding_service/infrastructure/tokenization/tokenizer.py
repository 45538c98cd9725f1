# embedding_service/infrastructure/tokenization/tokenizer.py
from typing import List, Optional

from embedding_service.domain.models import TokenSequence, Vocabulary

RESERVED_SLOTS = 2  # <s> and </s>


def tokenize(text: Optional[str], vocabulary: Vocabulary, max_length: int) -> TokenSequence:
    """
    Converts text into a fixed-length id sequence and attention mask.

    Words are lowercased whitespace-separated tokens looked up by exact match;
    unknown words map to <unk>. At most max_length - 2 words are kept so the
    start and end markers always fit. The result is right-padded with <pad>
    (mask 0) up to max_length.
    """
    if max_length < RESERVED_SLOTS:
        raise ValueError(f"max_length must be at least {RESERVED_SLOTS}, got {max_length}")

    words = (text or "").lower().split()
    words = words[: max_length - RESERVED_SLOTS]

    ids: List[int] = [vocabulary.start_id]
    ids.extend(vocabulary.lookup(word) for word in words)
    ids.append(vocabulary.end_id)
    mask: List[int] = [1] * len(ids)

    if len(ids) < max_length:
        padding = max_length - len(ids)
        ids.extend([vocabulary.pad_id] * padding)
        mask.extend([0] * padding)
    else:
        ids = ids[:max_length]
        mask = mask[:max_length]

    return TokenSequence(ids=tuple(ids), attention_mask=tuple(mask))
