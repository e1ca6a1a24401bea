"""
Confusion Matrix, Classification Metrics & Report Writers
==========================================================
- Confusion Matrix (numpy/pandas) → CSV
- Accuracy / Precision / Recall / F1 with undefined ratios flagged → JSON + TXT
- CV curve → CSV
"""
import json
import logging
import math
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score,
    classification_report,
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
)

from comment_classifier.core.errors import DegenerateMatrixError, InvalidInputError
from comment_classifier.training.config import RESULTS_DIR

logger = logging.getLogger(__name__)

BINARY_LABELS = [0, 1]


def _results_path(filename: str) -> str:
    RESULTS_DIR.mkdir(parents=True, exist_ok=True)
    return str(RESULTS_DIR / filename)


# ============================================================
# Confusion Matrix
# ============================================================

def compute_confusion_matrix(
    y_true: Sequence[int],
    y_pred: Sequence[int],
    labels: Sequence[int] = BINARY_LABELS,
) -> pd.DataFrame:
    """
    Confusion matrix as a DataFrame: rows = true label, columns = predicted.

    Cells always sum to the number of evaluated documents.
    """
    y_true = np.asarray(y_true).ravel()
    y_pred = np.asarray(y_pred).ravel()
    if y_true.shape != y_pred.shape:
        raise InvalidInputError(
            "True and predicted label vectors differ in length",
            n_true=y_true.shape[0],
            n_pred=y_pred.shape[0],
        )
    labels = list(labels)
    if y_true.size == 0:
        cm = np.zeros((len(labels), len(labels)), dtype=int)
    else:
        cm = confusion_matrix(y_true, y_pred, labels=labels)
    return pd.DataFrame(
        cm,
        index=pd.Index(labels, name="true"),
        columns=pd.Index(labels, name="predicted"),
    )


def save_confusion_matrix_csv(cm_df: pd.DataFrame, filepath: Optional[str] = None) -> str:
    """Write the confusion matrix to CSV."""
    if filepath is None:
        filepath = _results_path("confusion_matrix.csv")
    cm_df.to_csv(filepath, encoding="utf-8")
    logger.info("Confusion matrix CSV saved: %s", filepath)
    return filepath


# ============================================================
# Classification Metrics
# ============================================================

def compute_classification_metrics(
    y_true: Sequence[int],
    y_pred: Sequence[int],
    positive_label: int = 1,
    strict: bool = False,
) -> dict:
    """
    Accuracy, precision, recall and F1 for the positive class.

    Ratios with a zero denominator are NaN and listed under "degenerate";
    with strict=True they raise DegenerateMatrixError instead.
    """
    cm = compute_confusion_matrix(y_true, y_pred)
    negative_label = 1 - positive_label
    tp = int(cm.loc[positive_label, positive_label])
    fp = int(cm.loc[negative_label, positive_label])
    fn = int(cm.loc[positive_label, negative_label])
    tn = int(cm.loc[negative_label, negative_label])
    n = tp + fp + fn + tn

    degenerate = []
    if tp + fp == 0:
        degenerate.append("precision")
    if tp + fn == 0:
        degenerate.append("recall")
    if 2 * tp + fp + fn == 0:
        degenerate.append("f1")
    if n == 0:
        degenerate.append("accuracy")

    if degenerate:
        message = f"Undefined metrics (zero denominator): {', '.join(degenerate)}"
        if strict:
            raise DegenerateMatrixError(message, tp=tp, fp=fp, fn=fn, tn=tn)
        logger.warning("%s (tp=%d fp=%d fn=%d tn=%d)", message, tp, fp, fn, tn)

    if n == 0:
        accuracy = precision = recall = f1 = float("nan")
    else:
        scoring = dict(pos_label=positive_label, average="binary", zero_division=np.nan)
        accuracy = float(accuracy_score(y_true, y_pred))
        precision = float(precision_score(y_true, y_pred, **scoring))
        recall = float(recall_score(y_true, y_pred, **scoring))
        f1 = float(f1_score(y_true, y_pred, **scoring))

    return {
        "accuracy": accuracy,
        "precision": precision,
        "recall": recall,
        "f1": f1,
        "support": {"positive": tp + fn, "negative": tn + fp},
        "degenerate": degenerate,
    }


def to_json_safe(value):
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, np.generic):
        return to_json_safe(value.item())
    return value


def save_metrics_json(metrics: dict, filepath: Optional[str] = None) -> str:
    """Write metrics to JSON (NaN → null)."""
    if filepath is None:
        filepath = _results_path("evaluation_report.json")
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(to_json_safe(metrics), f, ensure_ascii=False, indent=2)
    logger.info("Evaluation report JSON saved: %s", filepath)
    return filepath


def save_metrics_txt(
    y_true: Sequence[int],
    y_pred: Sequence[int],
    filepath: Optional[str] = None,
    title: str = "L1 logistic regression",
    lam: Optional[float] = None,
) -> str:
    """Write sklearn's classification report as text."""
    if filepath is None:
        filepath = _results_path("evaluation_report.txt")

    report_str = classification_report(y_true, y_pred, labels=BINARY_LABELS, zero_division=0)

    with open(filepath, "w", encoding="utf-8") as f:
        f.write("=" * 70 + "\n")
        f.write(f"  EVALUATION REPORT — {title}\n")
        if lam is not None:
            f.write(f"  λ = {lam:.6g}\n")
        f.write("=" * 70 + "\n\n")
        f.write("Classification Report:\n\n")
        f.write(report_str)
        f.write("\n")

    logger.info("Evaluation report TXT saved: %s", filepath)
    return filepath


def save_cv_curve_csv(curve: pd.DataFrame, filepath: Optional[str] = None) -> str:
    """Write the cross-validation curve (one row per λ)."""
    if filepath is None:
        filepath = _results_path("cv_curve.csv")
    curve.to_csv(filepath, index=False)
    logger.info("CV curve CSV saved: %s", filepath)
    return filepath
