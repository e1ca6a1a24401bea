"""Tests for vocabulary / feature matrix construction."""
import numpy as np
import pytest

from comment_classifier.core.errors import InvalidInputError
from comment_classifier.core.features import build_features, transform

DOCS = [
    ["good", "edit", "good"],
    ["bad", "edit"],
    ["good", "page"],
    ["rare"],
]


def test_vocabulary_is_lexicographic_with_doc_frequencies():
    vocab, fm = build_features(DOCS)
    assert vocab.terms == ("bad", "edit", "good", "page", "rare")
    assert vocab.doc_frequencies == (1, 2, 2, 1, 1)
    assert fm.shape == (4, 5)
    assert fm.matrix[0, vocab.index("good")] == 2


def test_min_doc_frequency_trims_columns_not_rows():
    vocab, fm = build_features(DOCS, 2, document_ids=["a", "b", "c", "d"])
    assert vocab.terms == ("edit", "good")
    assert fm.document_ids == ("a", "b", "c", "d")
    assert fm.shape == (4, 2)
    # the "rare" document keeps its row, now all zeros
    assert fm.matrix[3].nnz == 0


def test_min_term_frequency_and_binary():
    vocab, fm = build_features(DOCS, min_term_frequency=3)
    assert vocab.terms == ("good",)
    vocab, fm = build_features(DOCS, binary=True)
    assert fm.matrix.max() == 1


def test_take_keeps_rows_and_ids_aligned():
    _, fm = build_features(DOCS, document_ids=[10, 11, 12, 13])
    sub = fm.take([2, 0])
    assert sub.document_ids == (12, 10)
    np.testing.assert_array_equal(sub.matrix.toarray(), fm.matrix.toarray()[[2, 0]])


def test_empty_vocabulary_raises():
    with pytest.raises(InvalidInputError):
        build_features(DOCS, 5)
    with pytest.raises(InvalidInputError):
        build_features([[], []])
    with pytest.raises(InvalidInputError):
        build_features([])


def test_id_count_mismatch_raises():
    with pytest.raises(InvalidInputError):
        build_features(DOCS, document_ids=[1, 2])


def test_transform_uses_fixed_vocabulary():
    vocab, _ = build_features(DOCS, 2)
    fm = transform([["good", "unseen", "good"], []], vocab, document_ids=["x", "y"])
    assert fm.shape == (2, 2)
    assert fm.matrix[0, vocab.index("good")] == 2
    assert fm.matrix[1].nnz == 0


def test_top_features_and_frame():
    _, fm = build_features(DOCS)
    assert fm.top_features(1) == [("good", 3)]
    frame = fm.to_frame()
    assert list(frame.columns) == ["bad", "edit", "good", "page", "rare"]
    assert frame.values.sum() == 8
