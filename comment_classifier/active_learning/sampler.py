"""
Active-Learning Sampler — uncertainty ranking of the unlabeled pool.
=====================================================================
uncertainty = |p − 0.5|, smaller = more uncertain. Ranking is a stable
ascending sort, so ties keep the original row order. The pool itself is
never modified; moving documents into the labeled set is the session's job.
"""
from dataclasses import dataclass
from itertools import islice
from typing import Iterator, Optional, Sequence, Union

import numpy as np

from comment_classifier.core.errors import InvalidInputError
from comment_classifier.core.features import FeatureMatrix
from comment_classifier.evaluation.evaluator import predict


@dataclass(frozen=True)
class UncertainSample:
    document_id: object
    probability: float
    uncertainty: float

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "probability": self.probability,
            "uncertainty": self.uncertainty,
        }


def _ranked(document_ids: list, prob: np.ndarray) -> Iterator[UncertainSample]:
    uncertainty = np.abs(prob - 0.5)
    order = np.argsort(uncertainty, kind="stable")
    for i in order:
        yield UncertainSample(
            document_id=document_ids[i],
            probability=float(prob[i]),
            uncertainty=float(uncertainty[i]),
        )


def rank_by_uncertainty(
    model,
    s: Union[str, float],
    unlabeled_features: FeatureMatrix,
    document_ids: Optional[Sequence] = None,
) -> Iterator[UncertainSample]:
    """
    Lazily yield the whole pool, most uncertain first.

    Inputs are checked and probabilities computed when called; only the
    ranking itself is lazy. Each call recomputes from the model, so the
    ranking can be restarted at any time and is identical for an unchanged
    model and pool.
    """
    if document_ids is None:
        if not isinstance(unlabeled_features, FeatureMatrix):
            raise InvalidInputError("document_ids are required for a raw feature matrix")
        document_ids = unlabeled_features.document_ids
    document_ids = list(document_ids)

    prob = predict(model, s, unlabeled_features, type="response")
    if prob.shape[0] != len(document_ids):
        raise InvalidInputError(
            "Feature matrix rows and document ids differ in length",
            n_rows=prob.shape[0],
            n_ids=len(document_ids),
        )
    return _ranked(document_ids, prob)


def select_for_labeling(
    model,
    s: Union[str, float],
    unlabeled_features: FeatureMatrix,
    batch_size: int,
    document_ids: Optional[Sequence] = None,
) -> list[UncertainSample]:
    """
    The `batch_size` most uncertain documents, most uncertain first.

    Returns the whole pool when it is smaller than batch_size.
    """
    if batch_size < 1:
        raise InvalidInputError("batch_size must be >= 1", batch_size=batch_size)
    ranking = rank_by_uncertainty(model, s, unlabeled_features, document_ids)
    return list(islice(ranking, batch_size))
