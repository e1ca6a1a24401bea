"""
Cross-Validated Trainer — L1 logistic path + k-fold λ selection.
=================================================================
Pipeline:
  1. Fit the full path on all training rows (defines the λ sequence)
  2. Assign stratified folds from the caller's seed
  3. For each fold (joblib workers, one result slot per fold):
       fit the path on k−1 folds, score the held-out fold at every λ
  4. Reduce: weighted mean, std, standard error per λ
  5. λ_min = argmin of the curve, λ_1se = largest λ within one SE
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
import scipy.sparse as sp
from joblib import Parallel, delayed
from scipy.special import expit
from sklearn.model_selection import StratifiedKFold

from comment_classifier.core.errors import InvalidInputError
from comment_classifier.core.features import FeatureMatrix, Vocabulary
from comment_classifier.core.logistic_path import LogisticPath, fit_logistic_path
from comment_classifier.training.config import (
    CONVERGENCE_TOL,
    CV_MEASURE,
    LAMBDA_MIN_RATIO,
    MAX_ITER,
    N_FOLDS,
    N_JOBS,
    N_LAMBDA,
    RANDOM_STATE,
    STANDARDIZE,
)

logger = logging.getLogger(__name__)

PROB_CLIP = 1e-5
MEASURES = ("deviance", "class", "mae")


# ============================================================
# RESULTS
# ============================================================

@dataclass(frozen=True, eq=False)
class CVResult:
    """Cross-validation curve over the λ path."""
    lambdas: np.ndarray
    fold_errors: np.ndarray     # (k, n_lambda); NaN where a fold skipped λ
    fold_ids: np.ndarray        # fold index per training row
    fold_sizes: np.ndarray
    measure: str
    cv_mean: np.ndarray
    cv_std: np.ndarray
    cv_stderr: np.ndarray
    usable: np.ndarray          # λ converged on the full fit and in every fold
    lambda_min: float
    lambda_1se: float

    @property
    def n_folds(self) -> int:
        return int(self.fold_errors.shape[0])

    @property
    def skipped_lambdas(self) -> list[float]:
        return [float(lam) for lam in self.lambdas[~self.usable]]

    def curve(self) -> pd.DataFrame:
        return pd.DataFrame({
            "lambda": self.lambdas,
            "cv_mean": self.cv_mean,
            "cv_std": self.cv_std,
            "cv_stderr": self.cv_stderr,
            "usable": self.usable,
        })


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Path + CV result; resolves "lambda.min" / "lambda.1se" selectors."""
    path: LogisticPath
    cv: CVResult
    seed: int

    @property
    def vocabulary(self) -> Optional[Vocabulary]:
        return self.path.vocabulary

    @property
    def lambda_min(self) -> float:
        return self.cv.lambda_min

    @property
    def lambda_1se(self) -> float:
        return self.cv.lambda_1se

    def resolve_lambda(self, s: Union[str, float]) -> float:
        if isinstance(s, str):
            if s in ("lambda.min", "min"):
                return self.cv.lambda_min
            if s in ("lambda.1se", "1se"):
                return self.cv.lambda_1se
            raise InvalidInputError(f"Unknown λ selector {s!r}", selector=s)
        return float(s)

    def coefficients_at(self, s) -> np.ndarray:
        return self.path.coefficients_at(self.resolve_lambda(s))

    def intercept_at(self, s) -> float:
        return self.path.intercept_at(self.resolve_lambda(s))

    def predict_proba(self, X, s) -> np.ndarray:
        if isinstance(X, FeatureMatrix):
            X = X.matrix
        return self.path.predict_proba(X, self.resolve_lambda(s))


# ============================================================
# FOLDS
# ============================================================

def assign_folds(labels: Sequence[int], k: int = N_FOLDS, seed: int = RANDOM_STATE) -> np.ndarray:
    """
    Stratified fold index (0..k-1) per row. Same labels + seed → same folds.

    Raises:
        InvalidInputError: k < 2 or a class has fewer than k members
    """
    y = np.asarray(labels).ravel()
    if k < 2:
        raise InvalidInputError("Cross-validation needs at least 2 folds", k=k)
    classes, counts = np.unique(y, return_counts=True)
    if classes.size < 2 or counts.min() < k:
        raise InvalidInputError(
            "Every class needs at least k documents so each fold holds both classes",
            k=k,
            class_counts=dict(zip(classes.tolist(), counts.tolist())),
        )
    fold_ids = np.empty(y.shape[0], dtype=int)
    splitter = StratifiedKFold(n_splits=k, shuffle=True, random_state=seed)
    for fold, (_, test_idx) in enumerate(splitter.split(np.zeros(y.shape[0]), y)):
        fold_ids[test_idx] = fold
    return fold_ids


def check_folds(y: np.ndarray, fold_ids: np.ndarray, shape: tuple) -> int:
    """Every held-out fold and every training remainder must hold both classes."""
    fold_ids = np.asarray(fold_ids, dtype=int).ravel()
    if fold_ids.shape[0] != y.shape[0]:
        raise InvalidInputError(
            "fold_ids length does not match the number of rows",
            shape=shape,
            n_fold_ids=fold_ids.shape[0],
        )
    folds = np.unique(fold_ids)
    if folds.size < 2:
        raise InvalidInputError("Cross-validation needs at least 2 folds", shape=shape)
    for fold in folds:
        held_out = y[fold_ids == fold]
        remainder = y[fold_ids != fold]
        for part, name in ((held_out, "held-out"), (remainder, "training")):
            if np.unique(part).size < 2:
                raise InvalidInputError(
                    f"Fold {fold} {name} part contains a single label class",
                    fold=int(fold),
                    shape=shape,
                    n_rows=int(part.shape[0]),
                )
    return int(folds.size)


# ============================================================
# ERROR MEASURES
# ============================================================

def cv_error(measure: str, y_true: np.ndarray, prob: np.ndarray) -> np.ndarray:
    """Held-out error per λ; prob has shape (n_rows, n_lambda)."""
    y = y_true[:, None]
    if measure == "deviance":
        p = np.clip(prob, PROB_CLIP, 1.0 - PROB_CLIP)
        return -2.0 * np.mean(y * np.log(p) + (1.0 - y) * np.log(1.0 - p), axis=0)
    if measure == "class":
        return np.mean(y != (prob > 0.5), axis=0)
    if measure == "mae":
        return np.mean(np.abs(y - prob), axis=0)
    raise InvalidInputError(f"Unknown CV measure {measure!r}", measure=measure)


def _fold_errors(X, y, fold_ids, fold, lambdas, measure, cancel_event, solver_opts) -> np.ndarray:
    train_idx = np.flatnonzero(fold_ids != fold)
    test_idx = np.flatnonzero(fold_ids == fold)
    path = fit_logistic_path(
        X[train_idx],
        y[train_idx],
        lambdas=lambdas,
        cancel_event=cancel_event,
        fold=int(fold),
        **solver_opts,
    )
    eta = np.asarray(X[test_idx] @ np.nan_to_num(path.coefficients).T) + np.nan_to_num(path.intercepts)
    prob = expit(eta)
    errors = cv_error(measure, y[test_idx], prob)
    errors[~path.converged] = np.nan
    if not path.converged.all():
        logger.warning("Fold %d skipped %d λ values", fold, int((~path.converged).sum()))
    return errors


# ============================================================
# SELECTION
# ============================================================

def select_lambdas(lambdas, cv_mean, cv_stderr, usable) -> tuple[float, float]:
    """
    λ_min: largest λ attaining the minimum mean CV error.
    λ_1se: largest λ whose mean error ≤ mean(λ_min) + stderr(λ_min).
    """
    if not usable.any():
        raise InvalidInputError("No λ on the path converged in every fold")
    masked = np.where(usable, cv_mean, np.inf)
    best = masked.min()
    # λ is decreasing, so the first match is the largest λ
    idx_min = int(np.flatnonzero(masked <= best)[0])
    threshold = cv_mean[idx_min] + cv_stderr[idx_min]
    idx_1se = int(np.flatnonzero(masked <= threshold)[0])
    return float(lambdas[idx_min]), float(lambdas[idx_1se])


# ============================================================
# TRAIN
# ============================================================

def train_path(
    features: Union[FeatureMatrix, sp.spmatrix, np.ndarray],
    labels: Sequence[int],
    k: int = N_FOLDS,
    penalty_sequence: Optional[Sequence[float]] = None,
    *,
    seed: int = RANDOM_STATE,
    measure: str = CV_MEASURE,
    fold_ids: Optional[Sequence[int]] = None,
    n_jobs: int = N_JOBS,
    cancel_event: Optional[threading.Event] = None,
    n_lambda: int = N_LAMBDA,
    lambda_min_ratio: Optional[float] = LAMBDA_MIN_RATIO,
    standardize: bool = STANDARDIZE,
    tol: float = CONVERGENCE_TOL,
    max_iter: int = MAX_ITER,
) -> tuple[LogisticPath, CVResult]:
    """
    Fit the L1 logistic path and cross-validate it.

    Args:
        features: FeatureMatrix (or raw matrix) — rows aligned with labels
        labels: 0/1 per row
        k: number of folds (ignored when fold_ids is given)
        penalty_sequence: λ values; default log-spaced from λ_max
        seed: fold-assignment seed
        measure: "deviance" | "class" | "mae"
        fold_ids: explicit fold index per row
        n_jobs: parallel fold workers (threads)
        cancel_event: set it to abort between λ steps

    Returns:
        (LogisticPath, CVResult)

    Raises:
        InvalidInputError: shape mismatch, non-binary labels, single-class fold,
            no usable λ
        TrainingCancelledError: cancel_event was set
    """
    if measure not in MEASURES:
        raise InvalidInputError(f"Unknown CV measure {measure!r}", measure=measure)

    if isinstance(features, FeatureMatrix):
        X, vocabulary = features.matrix, features.vocabulary
    else:
        X, vocabulary = features, None
    X = sp.csr_matrix(X, dtype=np.float64)
    y = np.asarray(labels, dtype=np.float64).ravel()
    if X.shape[0] != y.shape[0]:
        raise InvalidInputError(
            "Feature matrix rows and labels differ in length",
            shape=X.shape,
            n_labels=y.shape[0],
        )

    if fold_ids is None:
        fold_ids = assign_folds(y.astype(int), k=k, seed=seed)
    fold_ids = np.asarray(fold_ids, dtype=int)
    n_folds = check_folds(y, fold_ids, X.shape)

    solver_opts = dict(standardize=standardize, tol=tol, max_iter=max_iter)

    logger.info("Fitting L1 logistic path on %d x %d matrix", X.shape[0], X.shape[1])
    path = fit_logistic_path(
        X,
        y,
        lambdas=penalty_sequence,
        n_lambda=n_lambda,
        lambda_min_ratio=lambda_min_ratio,
        cancel_event=cancel_event,
        vocabulary=vocabulary,
        **solver_opts,
    )
    if not path.is_sparsity_monotone():
        logger.warning("Nonzero coefficient count is not monotone along the path")

    folds = np.unique(fold_ids)
    logger.info("Cross-validating %d λ values over %d folds (measure=%s)", path.lambdas.size, n_folds, measure)
    results = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_fold_errors)(X, y, fold_ids, fold, path.lambdas, measure, cancel_event, solver_opts)
        for fold in folds
    )
    fold_errors = np.vstack(results)
    fold_sizes = np.array([int(np.sum(fold_ids == fold)) for fold in folds])

    usable = path.converged & np.all(np.isfinite(fold_errors), axis=0)
    weights = fold_sizes / fold_sizes.sum()
    filled = np.where(np.isfinite(fold_errors), fold_errors, 0.0)
    cv_mean = weights @ filled
    cv_var = weights @ (filled - cv_mean) ** 2
    cv_std = np.sqrt(cv_var)
    cv_stderr = np.sqrt(cv_var / (n_folds - 1))
    for arr in (cv_mean, cv_std, cv_stderr):
        arr[~usable] = np.nan

    lambda_min, lambda_1se = select_lambdas(path.lambdas, cv_mean, cv_stderr, usable)
    skipped = path.lambdas[~usable]
    if skipped.size:
        logger.warning("Excluded %d λ values from selection: %s", skipped.size, np.round(skipped, 6).tolist())
    logger.info("λ_min=%.6g  λ_1se=%.6g", lambda_min, lambda_1se)

    cv = CVResult(
        lambdas=path.lambdas,
        fold_errors=fold_errors,
        fold_ids=fold_ids,
        fold_sizes=fold_sizes,
        measure=measure,
        cv_mean=cv_mean,
        cv_std=cv_std,
        cv_stderr=cv_stderr,
        usable=usable,
        lambda_min=lambda_min,
        lambda_1se=lambda_1se,
    )
    return path, cv


def fit_model(features, labels, k: int = N_FOLDS, penalty_sequence=None, *, seed: int = RANDOM_STATE, **kwargs) -> FittedModel:
    """train_path() bundled into a FittedModel."""
    path, cv = train_path(features, labels, k, penalty_sequence, seed=seed, **kwargs)
    return FittedModel(path=path, cv=cv, seed=seed)
