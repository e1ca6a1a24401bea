"""
Data Preparation — input table → documents → train/test split.
================================================================
Input sources:
  - pandas DataFrame with columns id, text, label (label empty = unlabeled)
  - CSV file with the same columns (loaded with pandas)
  - list of dicts (API payloads)
"""
import logging
from collections import Counter
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence, Union

import pandas as pd
from sklearn.model_selection import train_test_split

from comment_classifier.core.documents import (
    Document,
    LabeledDocument,
    make_document,
)
from comment_classifier.core.errors import InvalidInputError
from comment_classifier.training.config import (
    DATASET_PATH,
    ID_COLUMN,
    LABEL_COLUMN,
    RANDOM_STATE,
    TEST_SIZE,
    TEXT_COLUMN,
)

logger = logging.getLogger(__name__)


# ========================
# TABLE → DOCUMENTS
# ========================
def documents_from_frame(
    df: pd.DataFrame,
    id_column: str = ID_COLUMN,
    text_column: str = TEXT_COLUMN,
    label_column: Optional[str] = LABEL_COLUMN,
) -> list[Document]:
    """
    Convert a table into Labeled/Unlabeled documents (row order kept).

    A missing label column means every document is unlabeled.
    """
    for column in (id_column, text_column):
        if column not in df.columns:
            raise InvalidInputError(
                f"Input table must contain a '{column}' column",
                columns=list(df.columns),
            )
    has_label = label_column is not None and label_column in df.columns
    if label_column is not None and not has_label:
        logger.warning("No '%s' column found, treating every document as unlabeled", label_column)

    documents = []
    for row in df.to_dict("records"):
        try:
            documents.append(make_document(
                row[id_column],
                row[text_column],
                row[label_column] if has_label else None,
            ))
        except InvalidInputError as exc:
            exc.context.setdefault("document_id", row[id_column])
            raise
    return documents


def documents_from_records(records: Iterable[Mapping]) -> list[Document]:
    """Same as documents_from_frame for a list of dicts."""
    return [
        make_document(r[ID_COLUMN], r.get(TEXT_COLUMN), r.get(LABEL_COLUMN))
        for r in records
    ]


def load_documents_csv(
    path: Union[str, Path] = DATASET_PATH,
    id_column: str = ID_COLUMN,
    text_column: str = TEXT_COLUMN,
    label_column: Optional[str] = LABEL_COLUMN,
) -> list[Document]:
    """Read a CSV with pandas and convert it to documents."""
    df = pd.read_csv(path, encoding="utf-8")
    df[text_column] = df[text_column].fillna("").astype(str)
    documents = documents_from_frame(df, id_column, text_column, label_column)
    labels = Counter(getattr(d, "label", None) for d in documents)
    logger.info(
        "Loaded %d documents from %s (label counts: %s)",
        len(documents), path, dict(labels),
    )
    return documents


# ========================
# TRAIN / TEST SPLIT
# ========================
def split_labeled(
    labeled: Sequence[LabeledDocument],
    test_size: float = TEST_SIZE,
    seed: int = RANDOM_STATE,
    test_ids: Optional[Iterable] = None,
) -> tuple[list[LabeledDocument], list[LabeledDocument]]:
    """
    Stratified split of the labeled documents into (train, test).

    When test_ids is given the split is taken from it (fixed test set
    across active-learning rounds).
    """
    labeled = list(labeled)
    if test_ids is not None:
        test_ids = set(test_ids)
        train = [d for d in labeled if d.id not in test_ids]
        test = [d for d in labeled if d.id in test_ids]
        return train, test
    if not test_size:
        return labeled, []

    labels = [d.label for d in labeled]
    try:
        train, test = train_test_split(
            labeled,
            test_size=test_size,
            random_state=seed,
            stratify=labels,
        )
    except ValueError as exc:
        raise InvalidInputError(
            f"Cannot split labeled documents: {exc}",
            n_labeled=len(labeled),
            label_counts=dict(Counter(labels)),
            test_size=test_size,
        ) from exc
    # keep the original relative order inside each part
    position = {d.id: i for i, d in enumerate(labeled)}
    train.sort(key=lambda d: position[d.id])
    test.sort(key=lambda d: position[d.id])
    return train, test
