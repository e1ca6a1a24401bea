"""
Evaluator — predictions, confusion matrix and coefficient inspection.
=====================================================================
Works on a FittedModel (λ given as a value, "lambda.min" or "lambda.1se")
or on a bare LogisticPath (λ must be a value on the path).
"""
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
import scipy.sparse as sp
from scipy.special import expit

from comment_classifier.core.errors import InvalidInputError
from comment_classifier.core.features import FeatureMatrix
from comment_classifier.core.logistic_path import LogisticPath
from comment_classifier.evaluation.metrics import (
    compute_classification_metrics,
    compute_confusion_matrix,
)
from comment_classifier.training.trainer import FittedModel

PREDICTION_TYPES = ("response", "class", "link")
THRESHOLD = 0.5


@dataclass
class EvaluationReport:
    """Evaluation of one model at one λ."""
    lam: float
    selector: str
    probabilities: np.ndarray
    predictions: np.ndarray
    confusion_matrix: pd.DataFrame
    accuracy: float
    precision: float
    recall: float
    f1: float
    degenerate: list = field(default_factory=list)

    @property
    def n_documents(self) -> int:
        return int(self.predictions.shape[0])

    def to_dict(self) -> dict:
        return {
            "lambda": self.lam,
            "selector": self.selector,
            "n_documents": self.n_documents,
            "confusion_matrix": self.confusion_matrix.values.tolist(),
            "accuracy": self.accuracy,
            "precision": self.precision,
            "recall": self.recall,
            "f1": self.f1,
            "degenerate": list(self.degenerate),
        }


def _resolve(model, s) -> tuple[LogisticPath, float, str]:
    if isinstance(model, FittedModel):
        return model.path, model.resolve_lambda(s), s if isinstance(s, str) else "value"
    if isinstance(model, LogisticPath):
        if isinstance(s, str):
            raise InvalidInputError("λ selectors need a cross-validated model", selector=s)
        return model, float(s), "value"
    raise InvalidInputError(f"Unsupported model type {type(model).__name__}")


def _matrix(features) -> sp.csr_matrix:
    if isinstance(features, FeatureMatrix):
        return features.matrix
    return sp.csr_matrix(features)


# ============================================================
# PREDICT
# ============================================================

def predict(
    model: Union[FittedModel, LogisticPath],
    s: Union[str, float],
    features,
    type: str = "response",
) -> np.ndarray:
    """
    Apply the coefficient vector at λ to every row.

    Args:
        type: "response" (probability), "class" (0/1 at p > 0.5), "link" (η)
    """
    if type not in PREDICTION_TYPES:
        raise InvalidInputError(f"Unknown prediction type {type!r}", type=type)
    path, lam, _ = _resolve(model, s)
    eta = path.linear_predictor(_matrix(features), lam)
    if type == "link":
        return eta
    prob = expit(eta)
    if type == "class":
        return (prob > THRESHOLD).astype(int)
    return prob


# ============================================================
# EVALUATE
# ============================================================

def evaluate(
    model: Union[FittedModel, LogisticPath],
    s: Union[str, float],
    features,
    true_labels: Sequence[int],
    strict: bool = False,
) -> EvaluationReport:
    """
    Predict and score against true labels.

    Undefined precision/recall (zero denominators) are NaN and listed in
    report.degenerate; strict=True raises DegenerateMatrixError instead.
    """
    path, lam, selector = _resolve(model, s)
    X = _matrix(features)
    y_true = np.asarray(true_labels, dtype=int).ravel()
    if X.shape[0] != y_true.shape[0]:
        raise InvalidInputError(
            "Feature matrix rows and labels differ in length",
            shape=X.shape,
            n_labels=y_true.shape[0],
            lam=lam,
        )

    prob = predict(path, lam, X, type="response")
    y_pred = (prob > THRESHOLD).astype(int)
    cm = compute_confusion_matrix(y_true, y_pred)
    metrics = compute_classification_metrics(y_true, y_pred, strict=strict)

    return EvaluationReport(
        lam=lam,
        selector=selector,
        probabilities=prob,
        predictions=y_pred,
        confusion_matrix=cm,
        accuracy=metrics["accuracy"],
        precision=metrics["precision"],
        recall=metrics["recall"],
        f1=metrics["f1"],
        degenerate=metrics["degenerate"],
    )


# ============================================================
# COEFFICIENTS
# ============================================================

def coefficient_table(
    model: Union[FittedModel, LogisticPath],
    s: Union[str, float],
    terms: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Full weight vector paired with vocabulary terms, sorted by signed value (desc)."""
    path, lam, _ = _resolve(model, s)
    coefs = path.coefficients_at(lam)
    if terms is None:
        if path.vocabulary is None:
            terms = [f"x{j}" for j in range(coefs.shape[0])]
        else:
            terms = list(path.vocabulary.terms)
    if len(terms) != coefs.shape[0]:
        raise InvalidInputError(
            "Number of terms does not match number of coefficients",
            n_terms=len(terms),
            n_coefficients=coefs.shape[0],
        )
    table = pd.DataFrame({"term": list(terms), "coefficient": coefs})
    return table.sort_values("coefficient", ascending=False, kind="stable").reset_index(drop=True)


def top_terms(
    model: Union[FittedModel, LogisticPath],
    s: Union[str, float],
    n: int = 10,
    terms: Optional[Sequence[str]] = None,
) -> tuple[list[tuple[str, float]], list[tuple[str, float]]]:
    """(most positive, most negative) indicative terms with nonzero weight."""
    table = coefficient_table(model, s, terms)
    positive = table[table["coefficient"] > 0].head(n)
    negative = table[table["coefficient"] < 0].iloc[::-1].head(n)
    return (
        list(zip(positive["term"], positive["coefficient"].astype(float))),
        list(zip(negative["term"], negative["coefficient"].astype(float))),
    )
