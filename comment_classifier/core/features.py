"""
Feature Builder — token sequences → sparse document-term counts.
=================================================================
Pipeline:
  token lists → document frequency per term → trim (min_doc_frequency,
  min_term_frequency) → lexicographic column order → CSR count matrix

Vocabulary and FeatureMatrix are immutable value objects passed between
stages. Row i of a FeatureMatrix always belongs to document_ids[i].
"""
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd
import scipy.sparse as sp
from sklearn.feature_extraction.text import CountVectorizer

from comment_classifier.core.errors import InvalidInputError


def _identity_analyzer(tokens):
    # Documents arrive already tokenized by the normalizer
    return list(tokens)


# ============================================================
# VALUE OBJECTS
# ============================================================

@dataclass(frozen=True)
class Vocabulary:
    """Ordered terms (column space) with their document frequencies."""
    terms: tuple
    doc_frequencies: tuple = ()
    _index: dict = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_index", {t: i for i, t in enumerate(self.terms)})

    def __len__(self) -> int:
        return len(self.terms)

    def __iter__(self):
        return iter(self.terms)

    def __contains__(self, term) -> bool:
        return term in self._index

    def index(self, term: str) -> int:
        return self._index[term]

    def as_dict(self) -> dict:
        """term → column index (CountVectorizer `vocabulary=` format)."""
        return dict(self._index)


@dataclass(frozen=True, eq=False)
class FeatureMatrix:
    """Documents × terms count matrix, rows tied to document ids."""
    matrix: sp.csr_matrix
    document_ids: tuple
    vocabulary: Vocabulary

    def __post_init__(self):
        if self.matrix.shape[0] != len(self.document_ids):
            raise InvalidInputError(
                "Feature matrix rows do not match document ids",
                shape=self.matrix.shape,
                n_ids=len(self.document_ids),
            )
        if self.matrix.shape[1] != len(self.vocabulary):
            raise InvalidInputError(
                "Feature matrix columns do not match vocabulary",
                shape=self.matrix.shape,
                n_terms=len(self.vocabulary),
            )

    @property
    def shape(self) -> tuple:
        return self.matrix.shape

    @property
    def n_documents(self) -> int:
        return self.matrix.shape[0]

    def take(self, rows: Sequence[int]) -> "FeatureMatrix":
        """Row subset — matrix rows and ids move together."""
        rows = np.asarray(rows, dtype=int)
        return FeatureMatrix(
            matrix=self.matrix[rows],
            document_ids=tuple(self.document_ids[i] for i in rows),
            vocabulary=self.vocabulary,
        )

    def top_features(self, n: int = 10) -> list[tuple[str, int]]:
        """Most frequent terms across the corpus (term, total count)."""
        totals = np.asarray(self.matrix.sum(axis=0)).ravel()
        order = np.argsort(-totals, kind="stable")[:n]
        return [(self.vocabulary.terms[j], int(totals[j])) for j in order]

    def to_frame(self) -> pd.DataFrame:
        """Dense DataFrame view — for inspection of small corpora only."""
        return pd.DataFrame(
            self.matrix.toarray(),
            index=list(self.document_ids),
            columns=list(self.vocabulary.terms),
        )


# ============================================================
# BUILD / TRANSFORM
# ============================================================

def build_features(
    tokenized_documents: Sequence[Sequence[str]],
    min_doc_frequency: Optional[int] = None,
    *,
    document_ids: Optional[Sequence] = None,
    min_term_frequency: Optional[int] = None,
    binary: bool = False,
) -> tuple[Vocabulary, FeatureMatrix]:
    """
    Build vocabulary and count matrix from tokenized documents.

    Args:
        tokenized_documents: one token list per document
        min_doc_frequency: keep terms present in at least this many documents
            (None keeps the full vocabulary)
        document_ids: row ids (default 0..n-1)
        min_term_frequency: keep terms with at least this many total occurrences
        binary: record presence (0/1) instead of counts

    Returns:
        (Vocabulary, FeatureMatrix)

    Raises:
        InvalidInputError: empty corpus, bad thresholds, or no surviving terms
    """
    docs = [list(tokens) for tokens in tokenized_documents]
    ids = tuple(range(len(docs))) if document_ids is None else tuple(document_ids)
    if len(ids) != len(docs):
        raise InvalidInputError(
            "Number of document ids does not match number of documents",
            n_documents=len(docs),
            n_ids=len(ids),
        )
    if not docs:
        raise InvalidInputError("Cannot build features from an empty corpus")

    min_df = 1 if min_doc_frequency is None else int(min_doc_frequency)
    if min_df < 1:
        raise InvalidInputError("min_doc_frequency must be >= 1", min_doc_frequency=min_doc_frequency)
    if min_df > len(docs):
        raise InvalidInputError(
            "Vocabulary is empty: min_doc_frequency exceeds the number of documents",
            min_doc_frequency=min_df,
            n_documents=len(docs),
        )

    vectorizer = CountVectorizer(
        analyzer=_identity_analyzer,
        min_df=min_df,
        binary=binary,
        dtype=np.int64,
    )
    try:
        X = vectorizer.fit_transform(docs)
    except ValueError as exc:
        # sklearn reports both "empty vocabulary" and "no terms remain" as ValueError
        raise InvalidInputError(
            f"Vocabulary is empty after trimming: {exc}",
            min_doc_frequency=min_df,
            n_documents=len(docs),
        ) from exc

    terms = vectorizer.get_feature_names_out()
    X = sp.csr_matrix(X)

    if min_term_frequency is not None:
        totals = np.asarray(X.sum(axis=0)).ravel()
        keep = np.flatnonzero(totals >= int(min_term_frequency))
        if keep.size == 0:
            raise InvalidInputError(
                "Vocabulary is empty after min_term_frequency trimming",
                min_term_frequency=min_term_frequency,
                n_documents=len(docs),
            )
        X = X[:, keep]
        terms = terms[keep]

    doc_freq = np.asarray((X > 0).sum(axis=0)).ravel()
    vocabulary = Vocabulary(
        terms=tuple(str(t) for t in terms),
        doc_frequencies=tuple(int(d) for d in doc_freq),
    )
    X.sort_indices()
    return vocabulary, FeatureMatrix(matrix=X, document_ids=ids, vocabulary=vocabulary)


def transform(
    tokenized_documents: Iterable[Sequence[str]],
    vocabulary: Vocabulary,
    document_ids: Optional[Sequence] = None,
    binary: bool = False,
) -> FeatureMatrix:
    """Project documents onto a fixed vocabulary; unseen terms are ignored."""
    docs = [list(tokens) for tokens in tokenized_documents]
    ids = tuple(range(len(docs))) if document_ids is None else tuple(document_ids)
    if len(ids) != len(docs):
        raise InvalidInputError(
            "Number of document ids does not match number of documents",
            n_documents=len(docs),
            n_ids=len(ids),
        )
    if len(vocabulary) == 0:
        raise InvalidInputError("Cannot transform onto an empty vocabulary")

    vectorizer = CountVectorizer(
        analyzer=_identity_analyzer,
        vocabulary=vocabulary.as_dict(),
        binary=binary,
        dtype=np.int64,
    )
    if docs:
        X = sp.csr_matrix(vectorizer.transform(docs))
    else:
        X = sp.csr_matrix((0, len(vocabulary)), dtype=np.int64)
    X.sort_indices()
    return FeatureMatrix(matrix=X, document_ids=ids, vocabulary=vocabulary)
