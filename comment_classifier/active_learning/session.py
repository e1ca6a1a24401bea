"""
Active-Learning Session — orchestrates one pool across labeling rounds.
========================================================================
Each round:
  1. Rebuild vocabulary + feature matrices (pool may have changed)
  2. Fit the L1 logistic path with k-fold CV on the training rows
  3. Evaluate on the fixed test set at λ_min and λ_1se
  4. Rank the unlabeled pool by uncertainty → batch for annotation
Between rounds the session moves newly labeled documents from the
unlabeled pool into the training set (submit_labels).
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional

import numpy as np

from comment_classifier.core.documents import (
    Document,
    LabeledDocument,
    UnlabeledDocument,
    partition_pool,
)
from comment_classifier.core.errors import InvalidInputError
from comment_classifier.core.features import FeatureMatrix, Vocabulary, build_features, transform
from comment_classifier.core.normalizer import RegexNormalizer, TextNormalizer
from comment_classifier.active_learning.sampler import UncertainSample, select_for_labeling
from comment_classifier.evaluation.evaluator import EvaluationReport, evaluate
from comment_classifier.training.config import (
    BATCH_SIZE,
    BINARY_FEATURES,
    CONVERGENCE_TOL,
    CV_MEASURE,
    LAMBDA_MIN_RATIO,
    MAX_ITER,
    MAX_ROUNDS,
    MIN_DOC_FREQUENCY,
    MIN_TERM_FREQUENCY,
    N_FOLDS,
    N_JOBS,
    N_LAMBDA,
    RANDOM_STATE,
    SELECTION_LAMBDA,
    STANDARDIZE,
    TEST_SIZE,
    VOCABULARY_FROM,
)
from comment_classifier.training.data_preparation import split_labeled
from comment_classifier.training.trainer import FittedModel, fit_model

logger = logging.getLogger(__name__)

EVALUATION_SELECTORS = ("lambda.min", "lambda.1se")


@dataclass
class SessionConfig:
    """Per-session settings, defaults from training/config.py."""
    n_folds: int = N_FOLDS
    seed: int = RANDOM_STATE
    test_size: float = TEST_SIZE
    min_doc_frequency: Optional[int] = MIN_DOC_FREQUENCY
    min_term_frequency: Optional[int] = MIN_TERM_FREQUENCY
    binary: bool = BINARY_FEATURES
    vocabulary_from: str = VOCABULARY_FROM
    penalty_sequence: Optional[tuple] = None
    n_lambda: int = N_LAMBDA
    lambda_min_ratio: Optional[float] = LAMBDA_MIN_RATIO
    measure: str = CV_MEASURE
    n_jobs: int = N_JOBS
    standardize: bool = STANDARDIZE
    tol: float = CONVERGENCE_TOL
    max_iter: int = MAX_ITER
    batch_size: int = BATCH_SIZE
    selection_lambda: str = SELECTION_LAMBDA

    def __post_init__(self):
        if self.vocabulary_from not in ("corpus", "train"):
            raise InvalidInputError(
                "vocabulary_from must be 'corpus' or 'train'",
                vocabulary_from=self.vocabulary_from,
            )

    def trainer_kwargs(self) -> dict:
        return dict(
            measure=self.measure,
            n_jobs=self.n_jobs,
            n_lambda=self.n_lambda,
            lambda_min_ratio=self.lambda_min_ratio,
            standardize=self.standardize,
            tol=self.tol,
            max_iter=self.max_iter,
        )


@dataclass
class RoundResult:
    """Everything one active-learning round produced."""
    round: int
    n_train: int
    n_test: int
    n_unlabeled: int
    n_features: int
    lambda_min: float
    lambda_1se: float
    skipped_lambdas: list
    evaluations: dict
    batch: list
    model: FittedModel = field(repr=False)

    def to_dict(self) -> dict:
        return {
            "round": self.round,
            "n_train": self.n_train,
            "n_test": self.n_test,
            "n_unlabeled": self.n_unlabeled,
            "n_features": self.n_features,
            "lambda_min": self.lambda_min,
            "lambda_1se": self.lambda_1se,
            "skipped_lambdas": list(self.skipped_lambdas),
            "evaluations": {k: v.to_dict() for k, v in self.evaluations.items()},
            "batch": [s.to_dict() for s in self.batch],
        }


class ActiveLearningSession:
    """
    Owns the labeled / unlabeled pools and their lifecycle between rounds.

    Args:
        documents: the full pool (labeled + unlabeled variants)
        normalizer: text → tokens; RegexNormalizer by default
        config: SessionConfig
        test_ids: fix the test split instead of drawing it
    """

    def __init__(
        self,
        documents: Iterable[Document],
        normalizer: Optional[TextNormalizer] = None,
        config: Optional[SessionConfig] = None,
        test_ids: Optional[Iterable] = None,
    ):
        self.config = config or SessionConfig()
        self.normalizer = normalizer or RegexNormalizer()

        labeled, unlabeled = partition_pool(documents)
        self.train_docs, self.test_docs = split_labeled(
            labeled, self.config.test_size, self.config.seed, test_ids=test_ids
        )
        self.unlabeled: dict = {doc.id: doc for doc in unlabeled}
        self.history: list[RoundResult] = []
        self.model: Optional[FittedModel] = None
        self.vocabulary: Optional[Vocabulary] = None
        self._pool_features: Optional[FeatureMatrix] = None
        self._tokens: dict = {}
        # guards the pools, history and current model; training itself runs unlocked
        self.lock = threading.RLock()

        logger.info(
            "Session created: %d train, %d test, %d unlabeled",
            len(self.train_docs), len(self.test_docs), len(self.unlabeled),
        )

    # ----------------------------------------------------------
    # Pools
    # ----------------------------------------------------------
    @property
    def test_ids(self) -> list:
        return [d.id for d in self.test_docs]

    @property
    def round(self) -> int:
        return len(self.history)

    @property
    def last_batch(self) -> list[UncertainSample]:
        return self.history[-1].batch if self.history else []

    def _tokenize(self, doc) -> list[str]:
        # Texts never change, so tokens are cached per document id
        if doc.id not in self._tokens:
            self._tokens[doc.id] = list(self.normalizer.normalize(doc.text))
        return self._tokens[doc.id]

    # ----------------------------------------------------------
    # Features
    # ----------------------------------------------------------
    def build_features(
        self,
        train_docs: Optional[list] = None,
        pool_docs: Optional[list] = None,
    ) -> tuple[FeatureMatrix, FeatureMatrix, FeatureMatrix]:
        """
        (train, test, pool) matrices over one shared vocabulary.

        Without arguments the current pools are copied under the session lock.
        """
        cfg = self.config
        with self.lock:
            train = list(self.train_docs) if train_docs is None else list(train_docs)
            pool = list(self.unlabeled.values()) if pool_docs is None else list(pool_docs)
        test = self.test_docs

        if cfg.vocabulary_from == "corpus":
            docs = train + test + pool
            vocabulary, matrix = build_features(
                [self._tokenize(d) for d in docs],
                cfg.min_doc_frequency,
                document_ids=[d.id for d in docs],
                min_term_frequency=cfg.min_term_frequency,
                binary=cfg.binary,
            )
            n_train, n_test = len(train), len(test)
            train_fm = matrix.take(range(n_train))
            test_fm = matrix.take(range(n_train, n_train + n_test))
            pool_fm = matrix.take(range(n_train + n_test, len(docs)))
        else:
            vocabulary, train_fm = build_features(
                [self._tokenize(d) for d in train],
                cfg.min_doc_frequency,
                document_ids=[d.id for d in train],
                min_term_frequency=cfg.min_term_frequency,
                binary=cfg.binary,
            )
            test_fm = transform([self._tokenize(d) for d in test], vocabulary, [d.id for d in test], cfg.binary)
            pool_fm = transform([self._tokenize(d) for d in pool], vocabulary, [d.id for d in pool], cfg.binary)

        self.vocabulary = vocabulary
        return train_fm, test_fm, pool_fm

    # ----------------------------------------------------------
    # Rounds
    # ----------------------------------------------------------
    def _batch_size(self, batch_size: Optional[int]) -> int:
        if batch_size is None:
            return self.config.batch_size
        if batch_size < 1:
            raise InvalidInputError("batch_size must be >= 1", batch_size=batch_size)
        return batch_size

    def run_round(
        self,
        batch_size: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RoundResult:
        """
        Train, evaluate and select the next batch for annotation.

        Works on a snapshot of the pools taken when the round starts; labels
        submitted while training runs are picked up by the next round.
        """
        cfg = self.config
        batch_size = self._batch_size(batch_size)
        with self.lock:
            train_docs = list(self.train_docs)
            pool_docs = list(self.unlabeled.values())
            round_no = self.round + 1
        logger.info("Active-learning round %d", round_no)

        train_fm, test_fm, pool_fm = self.build_features(train_docs, pool_docs)
        y_train = np.array([d.label for d in train_docs], dtype=int)

        model = fit_model(
            train_fm,
            y_train,
            cfg.n_folds,
            cfg.penalty_sequence,
            seed=cfg.seed,
            cancel_event=cancel_event,
            **cfg.trainer_kwargs(),
        )

        evaluations: dict[str, EvaluationReport] = {}
        if self.test_docs:
            y_test = [d.label for d in self.test_docs]
            for selector in EVALUATION_SELECTORS:
                evaluations[selector] = evaluate(model, selector, test_fm, y_test)

        batch = []
        if pool_fm.n_documents:
            batch = select_for_labeling(model, cfg.selection_lambda, pool_fm, batch_size)

        result = RoundResult(
            round=round_no,
            n_train=len(train_docs),
            n_test=len(self.test_docs),
            n_unlabeled=len(pool_docs),
            n_features=len(train_fm.vocabulary),
            lambda_min=model.lambda_min,
            lambda_1se=model.lambda_1se,
            skipped_lambdas=model.cv.skipped_lambdas,
            evaluations=evaluations,
            batch=batch,
            model=model,
        )
        with self.lock:
            self.model = model
            self._pool_features = pool_fm
            self.history.append(result)

        for selector, report in evaluations.items():
            logger.info(
                "Round %d %s: accuracy=%.4f precision=%.4f recall=%.4f",
                round_no, selector, report.accuracy, report.precision, report.recall,
            )
        return result

    def query(self, batch_size: Optional[int] = None) -> list[UncertainSample]:
        """Re-rank the current pool with the current model (no retraining)."""
        batch_size = self._batch_size(batch_size)
        with self.lock:
            if self.model is None or self._pool_features is None:
                raise InvalidInputError("No model trained yet; run a round first")
            pool_ids = set(self._pool_features.document_ids)
            if pool_ids != set(self.unlabeled):
                # labels were submitted since the last round: drop them from the ranking
                keep = [i for i, doc_id in enumerate(self._pool_features.document_ids) if doc_id in self.unlabeled]
                self._pool_features = self._pool_features.take(keep)
            model, pool_fm = self.model, self._pool_features
        if pool_fm.n_documents == 0:
            return []
        return select_for_labeling(model, self.config.selection_lambda, pool_fm, batch_size)

    def submit_labels(self, labels: Mapping) -> int:
        """
        Move labeled documents from the unlabeled pool into the training set.

        All ids and labels are validated before anything is moved.

        Raises:
            InvalidInputError: unknown / already labeled id, or non-binary label
        """
        with self.lock:
            promoted: list[LabeledDocument] = []
            for doc_id, label in labels.items():
                doc: Optional[UnlabeledDocument] = self.unlabeled.get(doc_id)
                if doc is None:
                    raise InvalidInputError("Document is not in the unlabeled pool", document_id=doc_id)
                promoted.append(doc.with_label(label))

            for doc in promoted:
                del self.unlabeled[doc.id]
                self.train_docs.append(doc)
            remaining = len(self.unlabeled)
        logger.info("Added %d labeled documents, %d left in the pool", len(promoted), remaining)
        return len(promoted)

    def run_simulation(
        self,
        oracle: Callable[[UnlabeledDocument], int],
        n_rounds: int = MAX_ROUNDS,
        batch_size: Optional[int] = None,
    ) -> list[RoundResult]:
        """
        Repeat rounds, asking `oracle` for the label of every selected document.

        Stops early once the unlabeled pool is exhausted.
        """
        results = []
        for _ in range(n_rounds):
            result = self.run_round(batch_size=batch_size)
            results.append(result)
            if not result.batch:
                break
            self.submit_labels({
                s.document_id: oracle(self.unlabeled[s.document_id]) for s in result.batch
            })
            if not self.unlabeled:
                break
        return results
