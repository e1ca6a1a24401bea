"""Tests for uncertainty ranking of the unlabeled pool."""
import numpy as np
import pytest
import scipy.sparse as sp
from scipy.special import logit

from conftest import single_feature_path
from comment_classifier.active_learning.sampler import rank_by_uncertainty, select_for_labeling
from comment_classifier.core.errors import InvalidInputError
from comment_classifier.core.features import FeatureMatrix, Vocabulary


@pytest.fixture
def path():
    return single_feature_path(coefficient=1.0, intercept=0.0, lam=0.1)


def pool(probabilities, ids):
    """FeatureMatrix whose single feature makes the model predict `probabilities`."""
    X = sp.csr_matrix(logit(np.asarray(probabilities, dtype=float)).reshape(-1, 1))
    return FeatureMatrix(matrix=X, document_ids=tuple(ids), vocabulary=Vocabulary(terms=("x",)))


def test_closest_to_half_comes_first(path):
    features = pool([0.51, 0.9, 0.48], ["a", "b", "c"])
    batch = select_for_labeling(path, 0.1, features, batch_size=2)
    assert [s.document_id for s in batch] == ["a", "c"]
    assert batch[0].probability == pytest.approx(0.51)
    assert batch[1].probability == pytest.approx(0.48)
    assert batch[0].uncertainty < batch[1].uncertainty


def test_ties_keep_original_order(path):
    features = pool([0.8, 0.8, 0.5, 0.8], [10, 11, 12, 13])
    ranking = [s.document_id for s in rank_by_uncertainty(path, 0.1, features)]
    assert ranking == [12, 10, 11, 13]


def test_ranking_is_idempotent(path):
    features = pool([0.3, 0.7, 0.45, 0.99, 0.52], list("vwxyz"))
    first = select_for_labeling(path, 0.1, features, batch_size=3)
    second = select_for_labeling(path, 0.1, features, batch_size=3)
    assert first == second


def test_batch_larger_than_pool_returns_everything(path):
    features = pool([0.3, 0.6], ["p", "q"])
    batch = select_for_labeling(path, 0.1, features, batch_size=10)
    assert [s.document_id for s in batch] == ["q", "p"]


def test_invalid_batch_size_raises(path):
    features = pool([0.3], ["p"])
    with pytest.raises(InvalidInputError):
        select_for_labeling(path, 0.1, features, batch_size=0)


def test_raw_matrix_needs_ids(path):
    X = np.array([[0.0], [1.0]])
    with pytest.raises(InvalidInputError):
        list(rank_by_uncertainty(path, 0.1, X))
    batch = select_for_labeling(path, 0.1, X, batch_size=1, document_ids=["m", "n"])
    assert batch[0].document_id == "m"
    assert batch[0].to_dict() == {"document_id": "m", "probability": 0.5, "uncertainty": 0.0}


def test_bad_inputs_raise_before_iteration(path):
    X = np.array([[0.0], [1.0]])
    with pytest.raises(InvalidInputError):
        rank_by_uncertainty(path, 0.1, X)
    with pytest.raises(InvalidInputError):
        rank_by_uncertainty(path, 0.1, X, document_ids=["only-one"])
    with pytest.raises(InvalidInputError):
        rank_by_uncertainty(path, 0.7, pool([0.3], ["p"]))


def test_ranking_restarts_from_the_top(path):
    features = pool([0.3, 0.55, 0.9], ["a", "b", "c"])
    ranking = rank_by_uncertainty(path, 0.1, features)
    assert next(ranking).document_id == "b"
    assert next(rank_by_uncertainty(path, 0.1, features)).document_id == "b"
    assert [s.document_id for s in ranking] == ["a", "c"]
