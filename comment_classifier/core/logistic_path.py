"""
L1 Logistic Path — coordinate-descent solver for a decreasing λ sequence.
==========================================================================
Minimizes, for every λ on the path:

    -(1/n) Σ [ y·η − log(1 + e^η) ]  +  λ·‖β‖₁        η = β₀ + xβ

Algorithm (glmnet-style):
  1. Features are scaled by their standard deviation (standardize=True);
     coefficients are mapped back to the original scale at the end.
  2. For each λ (warm start from the previous λ):
       - sequential strong rule: only update j with |∇_j| ≥ 2λ − λ_prev
       - IRLS outer loop: quadratic approximation with weights p(1−p)
       - cyclic coordinate descent + soft-thresholding on that approximation
       - KKT check on the discarded features, re-solve on violations
  3. A λ that exhausts the iteration budget is reported as skipped
     (coefficients NaN), the path continues from the last converged point.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import scipy.sparse as sp
from scipy.special import expit

from comment_classifier.core.errors import (
    InvalidInputError,
    NonConvergenceError,
    TrainingCancelledError,
)
from comment_classifier.core.features import Vocabulary

logger = logging.getLogger(__name__)

MIN_WEIGHT = 1e-5          # floor for IRLS weights p(1-p)
KKT_SLACK = 1e-9
LAMBDA_RTOL = 1e-9         # tolerance when looking λ up on the path


# ============================================================
# FITTED PATH
# ============================================================

@dataclass(frozen=True, eq=False)
class LogisticPath:
    """Coefficients for every λ of a fitted path (original feature scale)."""
    lambdas: np.ndarray
    intercepts: np.ndarray
    coefficients: np.ndarray        # (n_lambda, n_features)
    converged: np.ndarray           # bool per λ
    iterations: np.ndarray          # coordinate passes per λ
    deviance_ratio: np.ndarray      # fraction of null deviance explained
    null_deviance: float
    vocabulary: Optional[Vocabulary] = None

    @property
    def n_features(self) -> int:
        return self.coefficients.shape[1]

    @property
    def n_nonzero(self) -> np.ndarray:
        """Nonzero coefficient count per λ (NaN for skipped λ)."""
        counts = np.count_nonzero(np.nan_to_num(self.coefficients), axis=1).astype(float)
        counts[~self.converged] = np.nan
        return counts

    @property
    def skipped_lambdas(self) -> list[float]:
        return [float(lam) for lam in self.lambdas[~self.converged]]

    def is_sparsity_monotone(self) -> bool:
        """Nonzero count never decreases as λ decreases (converged λ only)."""
        counts = self.n_nonzero[self.converged]
        return bool(np.all(np.diff(counts) >= 0))

    def index_of(self, lam: float) -> int:
        """Exact position of λ on the path."""
        matches = np.flatnonzero(np.isclose(self.lambdas, lam, rtol=LAMBDA_RTOL, atol=0.0))
        if matches.size == 0:
            raise InvalidInputError("λ is not on the fitted path", lam=lam)
        idx = int(matches[0])
        if not self.converged[idx]:
            raise InvalidInputError("λ was skipped (solver did not converge)", lam=lam)
        return idx

    def coefficients_at(self, lam: float) -> np.ndarray:
        return self.coefficients[self.index_of(lam)].copy()

    def intercept_at(self, lam: float) -> float:
        return float(self.intercepts[self.index_of(lam)])

    def linear_predictor(self, X, lam: float) -> np.ndarray:
        idx = self.index_of(lam)
        X = sp.csr_matrix(X, dtype=np.float64)
        if X.shape[1] != self.n_features:
            raise InvalidInputError(
                "Feature matrix width does not match the model",
                shape=X.shape,
                n_features=self.n_features,
            )
        return np.asarray(X @ self.coefficients[idx]).ravel() + self.intercepts[idx]

    def predict_proba(self, X, lam: float) -> np.ndarray:
        return expit(self.linear_predictor(X, lam))

    def summary(self) -> pd.DataFrame:
        """One row per λ — glmnet's print() table."""
        return pd.DataFrame({
            "lambda": self.lambdas,
            "n_nonzero": pd.array(
                [None if np.isnan(c) else int(c) for c in self.n_nonzero], dtype="Int64"
            ),
            "deviance_ratio": self.deviance_ratio,
            "converged": self.converged,
            "iterations": self.iterations,
        })


# ============================================================
# HELPERS
# ============================================================

def _validate_xy(X, y) -> tuple[sp.csc_matrix, np.ndarray]:
    if not sp.issparse(X):
        X = sp.csr_matrix(np.asarray(X, dtype=np.float64))
    Xc = sp.csc_matrix(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64).ravel()
    if Xc.shape[0] != y.shape[0]:
        raise InvalidInputError(
            "Feature matrix rows and labels differ in length",
            shape=Xc.shape,
            n_labels=y.shape[0],
        )
    if Xc.shape[0] == 0:
        raise InvalidInputError("Cannot fit on an empty feature matrix", shape=Xc.shape)
    if not np.all((y == 0) | (y == 1)):
        raise InvalidInputError("Labels must be 0/1", shape=Xc.shape)
    if y.min() == y.max():
        raise InvalidInputError(
            "Labels contain a single class", shape=Xc.shape, label=int(y[0])
        )
    return Xc, y


def _column_scale(Xc: sp.csc_matrix, standardize: bool) -> tuple[np.ndarray, np.ndarray]:
    """Return (scale, penalizable mask). Constant columns are never updated."""
    n = Xc.shape[0]
    mean = np.asarray(Xc.sum(axis=0)).ravel() / n
    sq_mean = np.asarray(Xc.multiply(Xc).sum(axis=0)).ravel() / n
    sd = np.sqrt(np.maximum(sq_mean - mean ** 2, 0.0))
    penalizable = sd > 1e-12
    if standardize:
        scale = np.where(penalizable, sd, 1.0)
    else:
        scale = np.ones_like(sd)
    return scale, penalizable


def _deviance(y: np.ndarray, eta: np.ndarray) -> float:
    # -2 · loglik, computed on the linear predictor for stability
    return float(-2.0 * np.sum(y * eta - np.logaddexp(0.0, eta)))


def lambda_max(X, y, standardize: bool = True) -> float:
    """Smallest λ at which every coefficient is zero."""
    Xc, y = _validate_xy(X, y)
    scale, penalizable = _column_scale(Xc, standardize)
    grad = np.asarray(Xc.T @ (y - y.mean())).ravel() / (scale * Xc.shape[0])
    grad[~penalizable] = 0.0
    return float(np.max(np.abs(grad)))


def default_lambda_sequence(
    X,
    y,
    n_lambda: int = 100,
    lambda_min_ratio: Optional[float] = None,
    standardize: bool = True,
) -> np.ndarray:
    """
    Log-spaced λ from λ_max (all-zero model) down to λ_max · ratio.

    ratio defaults to 1e-4 when n ≥ p, 0.01 otherwise.
    """
    if n_lambda < 1:
        raise InvalidInputError("n_lambda must be >= 1", n_lambda=n_lambda)
    lam_max = lambda_max(X, y, standardize=standardize)
    if lam_max <= 0:
        raise InvalidInputError("No feature varies across documents; λ_max is zero", shape=X.shape)
    n, p = X.shape
    if lambda_min_ratio is None:
        lambda_min_ratio = 1e-4 if n >= p else 1e-2
    if not 0 < lambda_min_ratio < 1:
        raise InvalidInputError("lambda_min_ratio must be in (0, 1)", lambda_min_ratio=lambda_min_ratio)
    if n_lambda == 1:
        return np.array([lam_max])
    return lam_max * np.power(lambda_min_ratio, np.linspace(0.0, 1.0, n_lambda))


def validate_lambda_sequence(lambdas: Sequence[float]) -> np.ndarray:
    """Positive, finite, distinct — returned sorted in decreasing order."""
    lams = np.asarray(lambdas, dtype=np.float64).ravel()
    if lams.size == 0:
        raise InvalidInputError("Penalty sequence is empty")
    if not np.all(np.isfinite(lams)) or np.any(lams <= 0):
        raise InvalidInputError("Penalty values must be positive and finite", lambdas=lams.tolist())
    lams = np.sort(lams)[::-1]
    if np.any(np.diff(lams) == 0):
        raise InvalidInputError("Penalty sequence contains duplicates", lambdas=lams.tolist())
    return lams


# ============================================================
# SOLVER
# ============================================================

class _PathSolver:
    """Holds the scaled design and warm-start state for one path fit."""

    def __init__(self, Xc, y, scale, penalizable, tol, max_iter, fold):
        self.n, self.p = Xc.shape
        self.y = y
        self.scale = scale
        self.penalizable = penalizable
        self.tol = tol
        self.max_iter = max_iter
        self.fold = fold

        self.Xs = sp.csc_matrix(Xc @ sp.diags(1.0 / scale))
        self.Xs.sort_indices()
        self.Xs_sq = sp.csc_matrix(self.Xs.multiply(self.Xs))
        self.indptr = self.Xs.indptr
        self.indices = self.Xs.indices
        self.data = self.Xs.data

        ybar = y.mean()
        self.b0 = float(np.log(ybar / (1.0 - ybar)))
        self.beta = np.zeros(self.p)
        self.eta = np.full(self.n, self.b0)

    def gradient(self, eta: np.ndarray) -> np.ndarray:
        grad = np.asarray(self.Xs.T @ (self.y - expit(eta))).ravel() / self.n
        grad[~self.penalizable] = 0.0
        return grad

    def solve(self, lam: float, strong: np.ndarray) -> tuple[np.ndarray, float, np.ndarray, int]:
        """
        Solve one λ starting from the current warm start.

        Returns (beta, b0, eta, passes). State is not modified; the caller
        commits the result only when it converged.
        """
        n, y = self.n, self.y
        beta = self.beta.copy()
        b0 = self.b0
        eta = self.eta.copy()
        strong = strong.copy()
        passes = 0

        while True:
            active = np.flatnonzero(strong)
            for _ in range(self.max_iter):
                prob = expit(eta)
                w = np.maximum(prob * (1.0 - prob), MIN_WEIGHT)
                r = y - prob  # = w·(z − η) for the working response z
                v = np.asarray(self.Xs_sq.T @ w).ravel() / n
                w_mean = w.sum() / n
                beta_old, b0_old = beta.copy(), b0

                # Coordinate descent on the penalized weighted least squares
                while True:
                    passes += 1
                    if passes > self.max_iter:
                        raise NonConvergenceError(
                            "Coordinate descent exceeded the iteration budget",
                            lam=lam,
                            iterations=passes - 1,
                            fold=self.fold,
                        )
                    max_change = 0.0
                    for j in active:
                        lo, hi = self.indptr[j], self.indptr[j + 1]
                        rows = self.indices[lo:hi]
                        vals = self.data[lo:hi]
                        bj = beta[j]
                        g = vals @ r[rows] / n + v[j] * bj
                        # same slack as the KKT check: |g| == λ up to rounding stays at zero
                        if abs(g) > lam * (1.0 + KKT_SLACK):
                            new = np.sign(g) * (abs(g) - lam) / v[j]
                        else:
                            new = 0.0
                        if new != bj:
                            delta = new - bj
                            beta[j] = new
                            r[rows] -= delta * w[rows] * vals
                            max_change = max(max_change, v[j] * delta * delta)
                    d0 = r.sum() / (n * w_mean)
                    if d0 != 0.0:
                        b0 += d0
                        r -= d0 * w
                        max_change = max(max_change, w_mean * d0 * d0)
                    if max_change < self.tol:
                        break

                eta = b0 + np.asarray(self.Xs @ beta).ravel()
                outer_change = max(
                    w_mean * (b0 - b0_old) ** 2,
                    float(np.max(v * (beta - beta_old) ** 2)) if self.p else 0.0,
                )
                if outer_change < self.tol:
                    break
            else:
                raise NonConvergenceError(
                    "IRLS did not converge", lam=lam, iterations=passes, fold=self.fold
                )

            # KKT check on everything the strong rule discarded
            grad = self.gradient(eta)
            violations = self.penalizable & ~strong & (np.abs(grad) > lam * (1.0 + KKT_SLACK))
            if not violations.any():
                return beta, b0, eta, passes
            strong |= violations

    def commit(self, beta, b0, eta):
        self.beta, self.b0, self.eta = beta, b0, eta


def fit_logistic_path(
    X,
    y,
    lambdas: Optional[Sequence[float]] = None,
    *,
    n_lambda: int = 100,
    lambda_min_ratio: Optional[float] = None,
    standardize: bool = True,
    tol: float = 1e-7,
    max_iter: int = 100000,
    cancel_event: Optional[threading.Event] = None,
    fold: Optional[int] = None,
    vocabulary: Optional[Vocabulary] = None,
) -> LogisticPath:
    """
    Fit the L1-penalized logistic regression path.

    Args:
        X: (n, p) feature matrix (scipy sparse or dense)
        y: 0/1 labels aligned with the rows of X
        lambdas: penalty sequence (sorted decreasing); default log-spaced
        standardize: scale features to unit variance before penalizing
        tol: convergence threshold on weighted squared coefficient change
        max_iter: coordinate-descent pass budget per λ
        cancel_event: checked between λ steps; set → TrainingCancelledError
        fold: fold index, only used in diagnostics

    Returns:
        LogisticPath — skipped λ are flagged, never zero-filled
    """
    Xc, y = _validate_xy(X, y)
    if vocabulary is not None and len(vocabulary) != Xc.shape[1]:
        raise InvalidInputError(
            "Vocabulary size does not match feature matrix width",
            shape=Xc.shape,
            n_terms=len(vocabulary),
        )
    if lambdas is None:
        lams = default_lambda_sequence(Xc, y, n_lambda, lambda_min_ratio, standardize)
    else:
        lams = validate_lambda_sequence(lambdas)

    scale, penalizable = _column_scale(Xc, standardize)
    solver = _PathSolver(Xc, y, scale, penalizable, tol, max_iter, fold)

    n_lam, p = lams.size, Xc.shape[1]
    coefs = np.full((n_lam, p), np.nan)
    intercepts = np.full(n_lam, np.nan)
    converged = np.zeros(n_lam, dtype=bool)
    iterations = np.zeros(n_lam, dtype=int)
    dev_ratio = np.full(n_lam, np.nan)
    null_dev = _deviance(y, np.full(y.shape[0], solver.b0))

    lam_prev = max(float(np.max(np.abs(solver.gradient(solver.eta)))), lams[0])
    for k, lam in enumerate(lams):
        if cancel_event is not None and cancel_event.is_set():
            raise TrainingCancelledError("Training cancelled", fold=fold, lam=float(lam))

        grad = solver.gradient(solver.eta)
        strong = penalizable & ((solver.beta != 0) | (np.abs(grad) >= 2.0 * lam - lam_prev))
        try:
            beta, b0, eta, passes = solver.solve(float(lam), strong)
        except NonConvergenceError as exc:
            logger.warning("Skipping λ=%.6g (fold=%s): %s", lam, fold, exc)
            iterations[k] = exc.iterations
            continue

        solver.commit(beta, b0, eta)
        lam_prev = lam
        coefs[k] = beta / scale
        coefs[k, ~penalizable] = 0.0
        intercepts[k] = b0
        converged[k] = True
        iterations[k] = passes
        dev_ratio[k] = 1.0 - _deviance(y, eta) / null_dev

    return LogisticPath(
        lambdas=lams,
        intercepts=intercepts,
        coefficients=coefs,
        converged=converged,
        iterations=iterations,
        deviance_ratio=dev_ratio,
        null_deviance=null_dev,
        vocabulary=vocabulary,
    )
