"""Tests for k-fold cross-validation and λ selection."""
import dataclasses
import logging
import threading

import numpy as np
import pytest

from comment_classifier.core.errors import InvalidInputError, TrainingCancelledError
from comment_classifier.core.features import build_features
from comment_classifier.core.logistic_path import default_lambda_sequence
from comment_classifier.core.normalizer import normalize_corpus
from comment_classifier.training import trainer
from comment_classifier.training.trainer import (
    assign_folds,
    cv_error,
    fit_model,
    select_lambdas,
    train_path,
)


def test_hundred_documents_five_folds_ten_lambdas(binary_design):
    X, y = binary_design
    lambdas = default_lambda_sequence(X, y, n_lambda=10)
    path, cv = train_path(X, y, k=5, penalty_sequence=lambdas, seed=3)

    assert cv.lambdas.shape == (10,)
    assert cv.fold_errors.shape == (5, 10)
    assert cv.n_folds == 5
    assert cv.fold_sizes.sum() == 100
    curve = cv.curve()
    assert len(curve) == 10
    assert list(curve.columns) == ["lambda", "cv_mean", "cv_std", "cv_stderr", "usable"]
    np.testing.assert_allclose(path.lambdas, lambdas)


def test_lambda_1se_is_not_smaller_than_lambda_min(binary_design):
    X, y = binary_design
    path, cv = train_path(X, y, k=5, n_lambda=15, seed=11)
    assert cv.lambda_1se >= cv.lambda_min
    assert cv.lambda_min in path.lambdas
    assert cv.lambda_1se in path.lambdas
    i_min = int(np.flatnonzero(path.lambdas == cv.lambda_min)[0])
    assert cv.cv_mean[i_min] == np.nanmin(cv.cv_mean)


def test_same_seed_same_result(binary_design):
    X, y = binary_design
    _, cv1 = train_path(X, y, k=5, n_lambda=8, seed=5)
    _, cv2 = train_path(X, y, k=5, n_lambda=8, seed=5)
    np.testing.assert_array_equal(cv1.fold_ids, cv2.fold_ids)
    np.testing.assert_allclose(cv1.cv_mean, cv2.cv_mean, equal_nan=True)
    assert cv1.lambda_min == cv2.lambda_min
    assert cv1.lambda_1se == cv2.lambda_1se


def test_parallel_folds_match_sequential(binary_design):
    X, y = binary_design
    _, seq = train_path(X, y, k=5, n_lambda=6, seed=2, n_jobs=1)
    _, par = train_path(X, y, k=5, n_lambda=6, seed=2, n_jobs=2)
    np.testing.assert_allclose(seq.fold_errors, par.fold_errors, equal_nan=True)


def test_assign_folds_is_stratified():
    y = np.array([0] * 10 + [1] * 15)
    folds = assign_folds(y, k=5, seed=0)
    for fold in range(5):
        assert set(y[folds == fold]) == {0, 1}
    np.testing.assert_array_equal(folds, assign_folds(y, k=5, seed=0))


def test_class_smaller_than_k_raises():
    y = np.array([0] * 10 + [1] * 3)
    with pytest.raises(InvalidInputError):
        assign_folds(y, k=5)


def test_single_class_fold_raises(binary_design):
    X, y = binary_design
    order = np.argsort(y, kind="stable")
    X, y = X[order], y[order]
    fold_ids = np.zeros(y.shape[0], dtype=int)
    fold_ids[y == 1] = 1
    with pytest.raises(InvalidInputError) as excinfo:
        train_path(X, y, fold_ids=fold_ids, n_lambda=5)
    assert "fold" in excinfo.value.context


def test_shape_mismatch_raises(binary_design):
    X, y = binary_design
    with pytest.raises(InvalidInputError):
        train_path(X, y[:-3], k=5)


def test_unknown_measure_raises(binary_design):
    X, y = binary_design
    with pytest.raises(InvalidInputError):
        train_path(X, y, measure="auc")


def test_cancel_event_aborts(binary_design):
    X, y = binary_design
    event = threading.Event()
    event.set()
    with pytest.raises(TrainingCancelledError):
        train_path(X, y, k=5, n_lambda=5, cancel_event=event)


def test_cv_error_measures():
    y = np.array([0.0, 1.0])
    prob = np.array([[0.5, 0.0], [0.5, 1.0]])
    np.testing.assert_allclose(cv_error("class", y, prob), [0.5, 0.0])
    np.testing.assert_allclose(cv_error("mae", y, prob), [0.5, 0.0])
    deviance = cv_error("deviance", y, prob)
    assert deviance[0] == pytest.approx(2 * np.log(2))
    assert 0 < deviance[1] < 1e-3


def test_select_lambdas_rules():
    lambdas = np.array([1.0, 0.5, 0.25, 0.1])
    mean = np.array([1.0, 0.8, 0.7, 0.75])
    se = np.full(4, 0.1)
    usable = np.ones(4, dtype=bool)
    assert select_lambdas(lambdas, mean, se, usable) == (0.25, 0.5)

    usable[2] = False
    assert select_lambdas(lambdas, mean, se, usable) == (0.1, 0.5)

    with pytest.raises(InvalidInputError):
        select_lambdas(lambdas, mean, se, np.zeros(4, dtype=bool))


def test_fitted_model_on_feature_matrix(comment_rows):
    ids = [r[0] for r in comment_rows]
    vocab, fm = build_features(normalize_corpus([r[1] for r in comment_rows]), 2, document_ids=ids)
    model = fit_model(fm, [r[2] for r in comment_rows], 5, seed=0, n_lambda=10)

    assert model.vocabulary is vocab
    assert model.resolve_lambda("lambda.min") == model.lambda_min
    assert model.resolve_lambda("1se") == model.lambda_1se
    assert model.coefficients_at("lambda.min").shape == (len(vocab),)
    prob = model.predict_proba(fm, "lambda.min")
    assert prob.shape == (len(ids),)
    with pytest.raises(InvalidInputError):
        model.resolve_lambda("lambda.best")


def test_lambda_skipped_in_one_fold_is_excluded(binary_design, monkeypatch, caplog):
    X, y = binary_design
    _, baseline = train_path(X, y, k=5, seed=3, n_lambda=10)
    skip = int(np.flatnonzero(baseline.lambdas == baseline.lambda_min)[0])

    fit = trainer.fit_logistic_path

    def fold_two_runs_out_of_iterations(*args, fold=None, **kwargs):
        path = fit(*args, fold=fold, **kwargs)
        if fold == 2:
            converged = path.converged.copy()
            converged[skip] = False
            path = dataclasses.replace(path, converged=converged)
        return path

    monkeypatch.setattr(trainer, "fit_logistic_path", fold_two_runs_out_of_iterations)
    with caplog.at_level(logging.WARNING, logger="comment_classifier.training.trainer"):
        path, cv = train_path(X, y, k=5, seed=3, n_lambda=10)

    assert path.converged.all()
    np.testing.assert_array_equal(cv.lambdas, baseline.lambdas)
    assert np.isnan(cv.fold_errors[2, skip])
    assert np.isfinite(np.delete(cv.fold_errors[:, skip], 2)).all()
    assert not cv.usable[skip]
    assert cv.usable.sum() == 9
    assert np.isnan(cv.cv_mean[skip]) and np.isnan(cv.cv_stderr[skip])
    assert cv.skipped_lambdas == [float(cv.lambdas[skip])]
    assert cv.lambda_min != cv.lambdas[skip]
    assert cv.lambda_1se != cv.lambdas[skip]
    assert cv.lambda_min == cv.lambdas[np.nanargmin(cv.cv_mean)]
    assert cv.lambda_1se >= cv.lambda_min
    assert "Fold 2 skipped 1" in caplog.text
