"""Deterministic tokenizer and inference stubs for tests.

The stubs satisfy the ``Tokenizer`` and ``InferenceSession`` protocols
without loading any model. Every output row depends only on that row's
own token ids and mask, so results do not depend on how texts are batched.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import numpy as np
import orjson
from tokenizers import Tokenizer
from tokenizers.models import WordLevel
from tokenizers.pre_tokenizers import Whitespace
from tokenizers.processors import TemplateProcessing

from text_embedding.adapters.tokenizers.tokenizer import TokenizerFiles
from text_embedding.domain.errors import InferenceError, TokenizationError
from text_embedding.domain.models import EncodedSequence

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    OutputsFn = Callable[[Mapping[str, np.ndarray]], dict[str, np.ndarray]]

PAD_ID = 0
CLS_ID = 101
SEP_ID = 102

WORD_LEVEL_VOCAB = {
    "[PAD]": 0,
    "[UNK]": 1,
    "[CLS]": 2,
    "[SEP]": 3,
    "hello": 4,
    "world": 5,
    "foo": 6,
    "bar": 7,
}


def token_id(word: str) -> int:
    """Stable fake vocabulary id for *word*."""
    return 1000 + sum(ord(c) for c in word) % 5000


# ---------------------------------------------------------------------------
# Tokenizer stubs
# ---------------------------------------------------------------------------


class StubTokenizer:
    """Whitespace tokenizer padding every sequence to ``max_length``."""

    def __init__(self, max_length: int = 8) -> None:
        self.max_length = max_length
        self.calls: list[list[str]] = []
        self._lock = threading.Lock()

    def encode_batch(
        self,
        texts: Sequence[str],
        add_special_tokens: bool,
    ) -> list[EncodedSequence]:
        with self._lock:
            self.calls.append(list(texts))
        encodings: list[EncodedSequence] = []
        for text in texts:
            if not isinstance(text, str):
                msg = f"cannot encode {type(text).__name__}"
                raise TokenizationError(msg)
            ids = [token_id(word) for word in text.split()]
            if add_special_tokens:
                ids = [CLS_ID, *ids, SEP_ID]
            ids = ids[: self.max_length]
            padding = self.max_length - len(ids)
            encodings.append(
                EncodedSequence(
                    ids=ids + [PAD_ID] * padding,
                    attention_mask=[1] * len(ids) + [0] * padding,
                    type_ids=[0] * self.max_length,
                )
            )
        return encodings


class FixedTokenizer:
    """Returns the same encodings for every call, whatever the texts."""

    def __init__(self, encodings: list[EncodedSequence]) -> None:
        self._encodings = encodings

    def encode_batch(
        self,
        texts: Sequence[str],
        add_special_tokens: bool,
    ) -> list[EncodedSequence]:
        return list(self._encodings)


# ---------------------------------------------------------------------------
# Inference stubs
# ---------------------------------------------------------------------------


def token_level_outputs(
    inputs: Mapping[str, np.ndarray],
    hidden_size: int = 4,
) -> dict[str, np.ndarray]:
    """A ``last_hidden_state`` of shape (M, L, hidden_size).

    Each token vector mixes the token id with a per-row signature, so the
    first token differs between texts the way a contextual encoder's would.
    """
    ids = inputs["input_ids"].astype(np.float32)
    mask = inputs["attention_mask"].astype(np.float32)
    signature = (ids * mask).sum(axis=1) % 97 + 1
    scale = np.arange(1, hidden_size + 1, dtype=np.float32)
    hidden = (ids % 13)[:, :, np.newaxis] + signature[:, np.newaxis, np.newaxis] * scale
    return {"last_hidden_state": hidden.astype(np.float32)}


def pooled_outputs(inputs: Mapping[str, np.ndarray]) -> dict[str, np.ndarray]:
    """Both a token-level and a pre-pooled ``sentence_embedding`` output."""
    outputs = token_level_outputs(inputs)
    outputs["sentence_embedding"] = outputs["last_hidden_state"].mean(axis=1) * -1.0
    return outputs


class StubSession:
    """Records every call and returns ``outputs_fn(inputs)``."""

    def __init__(
        self,
        outputs_fn: OutputsFn = token_level_outputs,
        input_names: Sequence[str] = ("input_ids", "attention_mask"),
        fail_when: Callable[[Mapping[str, np.ndarray]], bool] | None = None,
    ) -> None:
        self._outputs_fn = outputs_fn
        self._input_names = tuple(input_names)
        self._fail_when = fail_when
        self.calls: list[dict[str, np.ndarray]] = []
        self._lock = threading.Lock()

    @property
    def input_names(self) -> tuple[str, ...]:
        return self._input_names

    def run(self, inputs: Mapping[str, np.ndarray]) -> dict[str, np.ndarray]:
        with self._lock:
            self.calls.append(dict(inputs))
        if self._fail_when is not None and self._fail_when(inputs):
            msg = "engine failed"
            raise InferenceError(msg)
        return self._outputs_fn(inputs)


def fail_on_word(word: str) -> Callable[[Mapping[str, np.ndarray]], bool]:
    """Predicate failing any batch that contains *word*."""
    target = token_id(word)
    return lambda inputs: bool((inputs["input_ids"] == target).any())


# ---------------------------------------------------------------------------
# Real tokenizer files
# ---------------------------------------------------------------------------


def make_tokenizer_files(
    model_max_length: int | float = 512,
    pad_token: object = "[PAD]",
    pad_token_id: int | None = 0,
) -> TokenizerFiles:
    """Tokenizer files for a tiny WordLevel BERT-style tokenizer."""
    tokenizer = Tokenizer(WordLevel(WORD_LEVEL_VOCAB, unk_token="[UNK]"))
    tokenizer.pre_tokenizer = Whitespace()
    tokenizer.post_processor = TemplateProcessing(
        single="[CLS] $A [SEP]",
        pair="[CLS] $A [SEP] $B:1 [SEP]:1",
        special_tokens=[("[CLS]", 2), ("[SEP]", 3)],
    )

    config: dict[str, object] = {}
    if pad_token_id is not None:
        config["pad_token_id"] = pad_token_id
    tokenizer_config: dict[str, object] = {"model_max_length": model_max_length}
    if pad_token is not None:
        tokenizer_config["pad_token"] = pad_token

    return TokenizerFiles(
        tokenizer_file=tokenizer.to_str().encode("utf-8"),
        config_file=orjson.dumps(config),
        special_tokens_map_file=orjson.dumps(
            {
                "cls_token": "[CLS]",
                "sep_token": "[SEP]",
                "pad_token": "[PAD]",
                "unk_token": {
                    "content": "[UNK]",
                    "single_word": False,
                    "lstrip": False,
                    "rstrip": False,
                    "normalized": False,
                },
            }
        ),
        tokenizer_config_file=orjson.dumps(tokenizer_config),
    )
