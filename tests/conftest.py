"""Shared pytest fixtures for the text-embedding test suite.

This conftest provides stub tokenizers and inference sessions that wrap the
helpers in ``tests.fixtures.stubs``. No model files or ONNX graphs are
required for unit tests.
"""

from __future__ import annotations

import pytest

from tests.fixtures.stubs import StubSession, StubTokenizer, make_tokenizer_files
from text_embedding.embedding import TextEmbedding


@pytest.fixture()
def stub_tokenizer() -> StubTokenizer:
    """A whitespace tokenizer padding to 8 tokens."""
    return StubTokenizer(max_length=8)


@pytest.fixture()
def stub_session() -> StubSession:
    """A session returning a token-level ``last_hidden_state``."""
    return StubSession()


@pytest.fixture()
def embedder(stub_tokenizer: StubTokenizer, stub_session: StubSession) -> TextEmbedding:
    """A TextEmbedding wired to the stubs with four workers."""
    return TextEmbedding(stub_tokenizer, stub_session, num_workers=4)


@pytest.fixture()
def tokenizer_files():
    """Files for a tiny WordLevel tokenizer (vocab: hello, world, foo, bar)."""
    return make_tokenizer_files()


@pytest.fixture()
def sample_texts() -> list[str]:
    """Seven distinct texts, enough for uneven batch splits."""
    return [
        "hello world",
        "the quick brown fox",
        "",
        "embedding pipelines preserve order",
        "a",
        "lorem ipsum dolor sit amet consectetur",
        "hello",
    ]
