"""Unit tests for text_embedding.domain.batching."""

from __future__ import annotations

import numpy as np
import pytest

from text_embedding.domain.batching import BatchTensors, build_tensors, plan_batches
from text_embedding.domain.errors import ShapeError
from text_embedding.domain.models import EncodedSequence


def _seq(ids: list[int], mask: list[int] | None = None, type_ids: list[int] | None = None):
    return EncodedSequence(
        ids=ids,
        attention_mask=mask if mask is not None else [1] * len(ids),
        type_ids=type_ids if type_ids is not None else [0] * len(ids),
    )


class TestPlanBatches:
    """Tests for contiguous, order-preserving batch planning."""

    def test_empty_input_yields_no_batches(self) -> None:
        assert plan_batches([], 4) == []

    @pytest.mark.parametrize(
        ("n", "batch_size", "expected_sizes"),
        [
            (1, 1, [1]),
            (7, 3, [3, 3, 1]),
            (6, 3, [3, 3]),
            (5, 10, [5]),
            (4, 1, [1, 1, 1, 1]),
        ],
    )
    def test_batch_sizes(self, n: int, batch_size: int, expected_sizes: list[int]) -> None:
        batches = plan_batches(list(range(n)), batch_size)
        assert [len(b) for b in batches] == expected_sizes

    @pytest.mark.parametrize("batch_size", [1, 2, 3, 7, 100])
    def test_concatenation_reproduces_input(self, batch_size: int) -> None:
        texts = [f"text-{i}" for i in range(7)]
        batches = plan_batches(texts, batch_size)
        assert [t for batch in batches for t in batch] == texts

    def test_default_batch_size_is_256(self) -> None:
        batches = plan_batches(["x"] * 513)
        assert [len(b) for b in batches] == [256, 256, 1]

    @pytest.mark.parametrize("batch_size", [0, -1])
    def test_rejects_non_positive_batch_size(self, batch_size: int) -> None:
        with pytest.raises(ValueError, match="batch_size"):
            plan_batches(["a"], batch_size)


class TestBuildTensors:
    """Tests for row-major tensor construction."""

    def test_builds_three_int64_tensors(self) -> None:
        tensors = build_tensors(
            [
                _seq([101, 7, 102, 0], [1, 1, 1, 0], [0, 0, 0, 0]),
                _seq([101, 8, 9, 102], [1, 1, 1, 1], [0, 0, 1, 1]),
            ]
        )
        assert tensors.shape == (2, 4)
        for tensor in (tensors.input_ids, tensors.attention_mask, tensors.token_type_ids):
            assert tensor.dtype == np.int64
            assert tensor.shape == (2, 4)
        np.testing.assert_array_equal(tensors.input_ids, [[101, 7, 102, 0], [101, 8, 9, 102]])
        np.testing.assert_array_equal(tensors.attention_mask, [[1, 1, 1, 0], [1, 1, 1, 1]])
        np.testing.assert_array_equal(tensors.token_type_ids, [[0, 0, 0, 0], [0, 0, 1, 1]])

    def test_empty_batch_raises(self) -> None:
        with pytest.raises(ShapeError):
            build_tensors([])

    def test_length_mismatch_across_rows_raises(self) -> None:
        with pytest.raises(ShapeError, match="row 1"):
            build_tensors([_seq([1, 2, 3]), _seq([1, 2])])

    def test_length_mismatch_within_row_raises(self) -> None:
        with pytest.raises(ShapeError, match="row 0"):
            build_tensors([_seq([1, 2, 3], mask=[1, 1])])

    def test_shape_error_reports_stage(self) -> None:
        with pytest.raises(ShapeError) as exc_info:
            build_tensors([])
        assert exc_info.value.stage == "build_tensors"


class TestSessionInputs:
    """Tests for naming tensors for the engine."""

    def _tensors(self) -> BatchTensors:
        return build_tensors([_seq([1, 2]), _seq([3, 4])])

    def test_without_token_type_ids(self) -> None:
        inputs = self._tensors().as_session_inputs(include_token_type_ids=False)
        assert list(inputs) == ["input_ids", "attention_mask"]

    def test_with_token_type_ids(self) -> None:
        inputs = self._tensors().as_session_inputs(include_token_type_ids=True)
        assert list(inputs) == ["input_ids", "attention_mask", "token_type_ids"]
