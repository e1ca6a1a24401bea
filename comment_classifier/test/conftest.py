"""
Shared fixtures: a small synthetic comment corpus and a hand-built path.
"""
import numpy as np
import pytest

from comment_classifier.core.documents import make_document
from comment_classifier.core.logistic_path import LogisticPath

POSITIVE_WORDS = ["stupid", "idiot", "hate", "awful", "ugly", "loser"]
NEGATIVE_WORDS = ["thanks", "great", "helpful", "welcome", "agree", "nice"]
NEUTRAL_WORDS = ["article", "page", "edit", "source", "section", "wiki", "talk", "user"]


def synthetic_comments(n: int, seed: int = 0, noise: float = 0.15) -> list[tuple[int, str, int]]:
    """(id, text, label) rows; label 1 = attack, a share of the words come from the other class."""
    rng = np.random.RandomState(seed)
    rows = []
    for i in range(n):
        label = i % 2
        own, other = (POSITIVE_WORDS, NEGATIVE_WORDS) if label else (NEGATIVE_WORDS, POSITIVE_WORDS)
        words = []
        for _ in range(2):
            source = other if rng.rand() < noise else own
            words.append(source[rng.randint(len(source))])
        words += [NEUTRAL_WORDS[j] for j in rng.randint(len(NEUTRAL_WORDS), size=3)]
        rng.shuffle(words)
        rows.append((i, "This " + " ".join(words) + "!", label))
    return rows


@pytest.fixture
def comment_rows():
    return synthetic_comments(160, seed=1)


@pytest.fixture
def mixed_pool(comment_rows):
    """120 labeled + 40 unlabeled documents, and the hidden labels of the latter."""
    documents, hidden = [], {}
    for doc_id, text, label in comment_rows:
        if doc_id < 120:
            documents.append(make_document(doc_id, text, label))
        else:
            documents.append(make_document(doc_id, text, None))
            hidden[doc_id] = label
    return documents, hidden


@pytest.fixture
def binary_design():
    """
    Noisy binary design: 100 rows, 6 count features, two informative.
    """
    rng = np.random.RandomState(7)
    X = rng.binomial(1, 0.4, size=(100, 6)).astype(float)
    logits = 1.2 * X[:, 0] - 1.2 * X[:, 1] + 0.1
    y = (rng.rand(100) < 1.0 / (1.0 + np.exp(-logits))).astype(int)
    return X, y


def single_feature_path(coefficient: float = 1.0, intercept: float = 0.0, lam: float = 0.1, vocabulary=None) -> LogisticPath:
    coefs = np.atleast_2d(np.asarray(coefficient, dtype=float))
    return LogisticPath(
        lambdas=np.array([lam]),
        intercepts=np.array([intercept]),
        coefficients=coefs,
        converged=np.array([True]),
        iterations=np.array([1]),
        deviance_ratio=np.array([0.0]),
        null_deviance=1.0,
        vocabulary=vocabulary,
    )
