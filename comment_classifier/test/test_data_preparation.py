"""Tests for documents, table loading and the labeled split."""
import numpy as np
import pandas as pd
import pytest

from comment_classifier.core.documents import (
    LabeledDocument,
    UnlabeledDocument,
    coerce_label,
    make_document,
    partition_pool,
)
from comment_classifier.core.errors import InvalidInputError
from comment_classifier.training.data_preparation import (
    documents_from_frame,
    documents_from_records,
    load_documents_csv,
    split_labeled,
)


@pytest.mark.parametrize("raw, expected", [
    (None, None), ("", None), ("  ", None), (np.nan, None),
    (0, 0), (1, 1), ("1", 1), (1.0, 1), (np.int64(0), 0),
])
def test_coerce_label(raw, expected):
    assert coerce_label(raw) == expected


@pytest.mark.parametrize("raw", [2, -1, 0.5, "yes"])
def test_non_binary_label_raises(raw):
    with pytest.raises(InvalidInputError):
        coerce_label(raw)


def test_make_document_variants():
    assert isinstance(make_document(1, "hi", 1), LabeledDocument)
    doc = make_document("2", None, None)
    assert isinstance(doc, UnlabeledDocument)
    assert doc.id == 2 and doc.text == ""
    assert doc.with_label(0) == LabeledDocument(id=2, text="", label=0)
    with pytest.raises(InvalidInputError):
        make_document("abc", "text")


@pytest.mark.parametrize("raw", [1.5, "1.5", np.float64(2.25), np.nan, float("inf"), None])
def test_non_integral_document_id_raises(raw):
    with pytest.raises(InvalidInputError):
        make_document(raw, "x", 1)


@pytest.mark.parametrize("raw", [3, "3", 3.0, np.int64(3), np.float64(3.0)])
def test_integral_document_id_is_accepted(raw):
    assert make_document(raw, "x", 1).id == 3


def test_float_ids_in_frame_do_not_merge_documents():
    df = pd.DataFrame({"id": [1.0, 1.5], "text": ["a", "b"], "label": [1, 0]})
    with pytest.raises(InvalidInputError):
        documents_from_frame(df)


def test_partition_keeps_order_and_rejects_duplicates():
    docs = [make_document(1, "a", 1), make_document(2, "b"), make_document(3, "c", 0)]
    labeled, unlabeled = partition_pool(docs)
    assert [d.id for d in labeled] == [1, 3]
    assert [d.id for d in unlabeled] == [2]
    with pytest.raises(InvalidInputError):
        partition_pool(docs + [make_document(1, "again")])


def test_documents_from_frame_with_missing_labels():
    df = pd.DataFrame({"id": [1, 2, 3], "text": ["a", "b", "c"], "label": [1, None, 0]})
    docs = documents_from_frame(df)
    assert [type(d) for d in docs] == [LabeledDocument, UnlabeledDocument, LabeledDocument]


def test_documents_from_frame_without_label_column():
    df = pd.DataFrame({"id": [1, 2], "text": ["a", "b"]})
    assert all(isinstance(d, UnlabeledDocument) for d in documents_from_frame(df))
    with pytest.raises(InvalidInputError):
        documents_from_frame(df.drop(columns=["text"]))


def test_bad_label_reports_document_id():
    df = pd.DataFrame({"id": [7], "text": ["a"], "label": [5]})
    with pytest.raises(InvalidInputError) as excinfo:
        documents_from_frame(df)
    assert excinfo.value.context["document_id"] == 7


def test_documents_from_records():
    docs = documents_from_records([{"id": 1, "text": "x", "label": 0}, {"id": 2, "text": "y"}])
    assert isinstance(docs[0], LabeledDocument) and isinstance(docs[1], UnlabeledDocument)


def test_load_documents_csv(tmp_path):
    path = tmp_path / "comments.csv"
    path.write_text("id,text,label\n1,hello there,1\n2,,0\n3,no label yet,\n", encoding="utf-8")
    docs = load_documents_csv(path)
    assert [d.id for d in docs] == [1, 2, 3]
    assert docs[1].text == ""
    assert isinstance(docs[2], UnlabeledDocument)


def test_split_is_stratified_deterministic_and_ordered():
    labeled = [make_document(i, f"t{i}", i % 2) for i in range(50)]
    train, test = split_labeled(labeled, test_size=0.2, seed=1)
    assert len(test) == 10
    assert sum(d.label for d in test) == 5
    assert [d.id for d in train] == sorted(d.id for d in train)
    again, _ = split_labeled(labeled, test_size=0.2, seed=1)
    assert again == train


def test_split_with_fixed_test_ids():
    labeled = [make_document(i, "t", i % 2) for i in range(6)]
    train, test = split_labeled(labeled, test_ids=[0, 5])
    assert [d.id for d in test] == [0, 5]
    assert [d.id for d in train] == [1, 2, 3, 4]


def test_split_too_small_raises():
    labeled = [make_document(0, "t", 0), make_document(1, "t", 1)]
    with pytest.raises(InvalidInputError):
        split_labeled(labeled, test_size=0.2)
