"""Tests for prediction, evaluation reports and coefficient inspection."""
import json
import math

import numpy as np
import pytest
import scipy.sparse as sp

from conftest import single_feature_path
from comment_classifier.core.errors import DegenerateMatrixError, InvalidInputError
from comment_classifier.core.features import Vocabulary
from comment_classifier.core.logistic_path import LogisticPath
from comment_classifier.evaluation.evaluator import coefficient_table, evaluate, predict, top_terms
from comment_classifier.evaluation.metrics import (
    compute_classification_metrics,
    compute_confusion_matrix,
    save_metrics_json,
)


def three_term_path() -> LogisticPath:
    vocab = Vocabulary(terms=("awful", "edit", "thanks"))
    return LogisticPath(
        lambdas=np.array([0.5, 0.1]),
        intercepts=np.array([0.0, -0.2]),
        coefficients=np.array([[0.0, 0.0, 0.0], [2.0, 0.0, -1.5]]),
        converged=np.array([True, True]),
        iterations=np.array([1, 5]),
        deviance_ratio=np.array([0.0, 0.3]),
        null_deviance=10.0,
        vocabulary=vocab,
    )


def test_prediction_types():
    path = single_feature_path(coefficient=1.0, intercept=0.0)
    X = np.array([[-2.0], [0.0], [3.0]])
    np.testing.assert_allclose(predict(path, 0.1, X, type="link"), [-2.0, 0.0, 3.0])
    prob = predict(path, 0.1, X)
    assert prob[1] == pytest.approx(0.5)
    # p = 0.5 is not above the threshold
    np.testing.assert_array_equal(predict(path, 0.1, X, type="class"), [0, 0, 1])
    with pytest.raises(InvalidInputError):
        predict(path, 0.1, X, type="odds")


def test_selector_needs_cross_validated_model():
    path = single_feature_path()
    with pytest.raises(InvalidInputError):
        predict(path, "lambda.min", np.ones((2, 1)))


def test_confusion_matrix_sums_to_number_of_documents():
    path = single_feature_path(coefficient=1.0)
    X = sp.csr_matrix(np.array([[2.0], [-2.0], [1.0], [-1.0], [3.0]]))
    report = evaluate(path, 0.1, X, [1, 0, 0, 1, 1])
    assert report.confusion_matrix.values.sum() == 5
    assert report.n_documents == 5
    assert report.confusion_matrix.loc[1, 1] == 2   # true positives
    assert report.confusion_matrix.loc[0, 1] == 1   # false positive
    assert report.accuracy == pytest.approx(0.6)
    assert report.precision == pytest.approx(2 / 3)
    assert report.recall == pytest.approx(2 / 3)
    assert report.degenerate == []


def test_no_positive_predictions_flags_precision():
    path = single_feature_path(coefficient=1.0, intercept=-10.0)
    report = evaluate(path, 0.1, np.zeros((4, 1)), [0, 1, 0, 1])
    assert math.isnan(report.precision)
    assert "precision" in report.degenerate
    assert report.recall == 0.0
    assert report.accuracy == pytest.approx(0.5)


def test_strict_mode_raises_on_undefined_metrics():
    path = single_feature_path(coefficient=1.0, intercept=-10.0)
    with pytest.raises(DegenerateMatrixError):
        evaluate(path, 0.1, np.zeros((4, 1)), [0, 1, 0, 1], strict=True)


def test_label_count_mismatch_raises():
    path = single_feature_path()
    with pytest.raises(InvalidInputError):
        evaluate(path, 0.1, np.zeros((3, 1)), [0, 1])


def test_empty_evaluation_is_all_zero_and_degenerate():
    cm = compute_confusion_matrix([], [])
    assert cm.values.sum() == 0
    metrics = compute_classification_metrics([], [])
    assert set(metrics["degenerate"]) == {"precision", "recall", "f1", "accuracy"}


def test_metrics_follow_confusion_counts():
    # tp=1 fp=1 fn=2 tn=1
    metrics = compute_classification_metrics([1, 1, 0, 0, 1], [1, 0, 1, 0, 0])
    assert metrics["precision"] == pytest.approx(0.5)
    assert metrics["recall"] == pytest.approx(1 / 3)
    assert metrics["f1"] == pytest.approx(0.4)
    assert metrics["accuracy"] == pytest.approx(0.4)
    assert metrics["degenerate"] == []


def test_f1_is_zero_without_true_positives():
    metrics = compute_classification_metrics([1, 0, 1], [0, 1, 0])
    assert metrics["precision"] == 0.0
    assert metrics["recall"] == 0.0
    assert metrics["f1"] == 0.0
    assert metrics["degenerate"] == []


def test_metrics_json_writes_nan_as_null(tmp_path):
    metrics = compute_classification_metrics([0, 0], [0, 0])
    target = save_metrics_json(metrics, str(tmp_path / "report.json"))
    with open(target, encoding="utf-8") as f:
        data = json.load(f)
    assert data["precision"] is None
    assert data["accuracy"] == 1.0


def test_coefficient_table_and_top_terms():
    path = three_term_path()
    table = coefficient_table(path, 0.1)
    assert list(table["term"]) == ["awful", "edit", "thanks"]
    assert list(table["coefficient"]) == [2.0, 0.0, -1.5]

    positive, negative = top_terms(path, 0.1, n=5)
    assert positive == [("awful", 2.0)]
    assert negative == [("thanks", -1.5)]

    positive, negative = top_terms(path, 0.5)
    assert positive == [] and negative == []


def test_coefficient_table_term_count_must_match():
    with pytest.raises(InvalidInputError):
        coefficient_table(three_term_path(), 0.1, terms=["a", "b"])
