"""Hugging Face ``tokenizers`` adapter.

Implements the ``Tokenizer`` protocol on top of ``tokenizers.Tokenizer`` and
builds configured tokenizers from the four files that ship with a
Hugging Face model:

- ``tokenizer.json``: the serialized tokenizer
- ``config.json``: model config, provides ``pad_token_id``
- ``special_tokens_map.json``: special tokens to register
- ``tokenizer_config.json``: ``model_max_length`` and ``pad_token``
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson
import structlog
from tokenizers import AddedToken
from tokenizers import Tokenizer as HFTokenizerModel

from text_embedding.domain.errors import TokenizationError
from text_embedding.domain.models import EncodedSequence, PaddingStrategy

if TYPE_CHECKING:
    from collections.abc import Sequence

log = structlog.get_logger(__name__)

DEFAULT_MAX_LENGTH = 512

TOKENIZER_FILE = "tokenizer.json"
CONFIG_FILE = "config.json"
SPECIAL_TOKENS_MAP_FILE = "special_tokens_map.json"
TOKENIZER_CONFIG_FILE = "tokenizer_config.json"


@dataclass(frozen=True, slots=True)
class TokenizerFiles:
    """Raw bytes of the tokenizer files of one model."""

    tokenizer_file: bytes
    config_file: bytes
    special_tokens_map_file: bytes
    tokenizer_config_file: bytes

    @classmethod
    def from_directory(cls, directory: str | Path) -> TokenizerFiles:
        """Read the four tokenizer files from *directory*."""
        root = Path(directory)
        return cls(
            tokenizer_file=(root / TOKENIZER_FILE).read_bytes(),
            config_file=(root / CONFIG_FILE).read_bytes(),
            special_tokens_map_file=(root / SPECIAL_TOKENS_MAP_FILE).read_bytes(),
            tokenizer_config_file=(root / TOKENIZER_CONFIG_FILE).read_bytes(),
        )


class HFTokenizer:
    """Tokenizer implementation backed by ``tokenizers.Tokenizer``.

    Satisfies the ``text_embedding.ports.tokenizer.Tokenizer`` protocol.
    Padding and truncation are configured on the wrapped tokenizer, see
    ``load_tokenizer``.
    """

    def __init__(self, tokenizer: HFTokenizerModel) -> None:
        self._tokenizer = tokenizer

    @property
    def raw(self) -> HFTokenizerModel:
        return self._tokenizer

    def encode_batch(
        self,
        texts: Sequence[str],
        add_special_tokens: bool,
    ) -> list[EncodedSequence]:
        for position, text in enumerate(texts):
            if not isinstance(text, str):
                msg = f"input {position} is {type(text).__name__}, expected str"
                raise TokenizationError(msg)
        try:
            encodings = self._tokenizer.encode_batch(
                list(texts),
                add_special_tokens=add_special_tokens,
            )
        except Exception as exc:
            raise TokenizationError(f"tokenizer failed: {exc}") from exc

        return [
            EncodedSequence(
                ids=list(encoding.ids),
                attention_mask=list(encoding.attention_mask),
                type_ids=list(encoding.type_ids),
            )
            for encoding in encodings
        ]


def load_tokenizer(
    files: TokenizerFiles,
    max_length: int = DEFAULT_MAX_LENGTH,
    padding: PaddingStrategy = PaddingStrategy.MAX_LENGTH,
) -> HFTokenizer:
    """Build a padded, truncating tokenizer from *files*.

    ``max_length`` is capped at the model's ``model_max_length``. Some configs
    carry a huge placeholder (e.g. 1e30) for that value, which the cap
    ignores naturally.
    """
    config = _load_json(files.config_file, CONFIG_FILE)
    special_tokens_map = _load_json(files.special_tokens_map_file, SPECIAL_TOKENS_MAP_FILE)
    tokenizer_config = _load_json(files.tokenizer_config_file, TOKENIZER_CONFIG_FILE)

    try:
        tokenizer = HFTokenizerModel.from_str(files.tokenizer_file.decode("utf-8"))
    except Exception as exc:
        raise TokenizationError(f"could not read {TOKENIZER_FILE}: {exc}") from exc

    model_max_length = tokenizer_config.get("model_max_length")
    if isinstance(model_max_length, int | float):
        max_length = min(max_length, int(model_max_length))

    pad_id = config.get("pad_token_id")
    if not isinstance(pad_id, int):
        pad_id = 0
    pad_token = _token_content(tokenizer_config.get("pad_token")) or "[PAD]"

    tokenizer.enable_truncation(max_length=max_length)
    tokenizer.enable_padding(
        pad_id=pad_id,
        pad_token=pad_token,
        length=max_length if padding == PaddingStrategy.MAX_LENGTH else None,
    )
    tokenizer.add_special_tokens(_special_tokens(special_tokens_map))

    log.info(
        "tokenizer_loaded",
        max_length=max_length,
        padding=str(padding),
        pad_id=pad_id,
        pad_token=pad_token,
    )
    return HFTokenizer(tokenizer)


def _load_json(raw: bytes, filename: str) -> dict[str, Any]:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise TokenizationError(f"could not read {filename}: {exc}") from exc
    if not isinstance(data, dict):
        raise TokenizationError(f"{filename} must contain a JSON object")
    return data


def _token_content(value: Any) -> str | None:
    """Token text from either the string or the object form of a token entry."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("content"), str):
        return value["content"]
    return None


def _special_tokens(special_tokens_map: dict[str, Any]) -> list[AddedToken]:
    tokens: list[AddedToken] = []
    for value in special_tokens_map.values():
        if isinstance(value, str):
            tokens.append(AddedToken(value, special=True))
        elif isinstance(value, dict) and isinstance(value.get("content"), str):
            tokens.append(
                AddedToken(
                    value["content"],
                    single_word=bool(value.get("single_word", False)),
                    lstrip=bool(value.get("lstrip", False)),
                    rstrip=bool(value.get("rstrip", False)),
                    normalized=bool(value.get("normalized", True)),
                    special=True,
                )
            )
    return tokens
