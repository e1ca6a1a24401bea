"""
Documents — labeled / unlabeled variants of a comment.
======================================================
The document pool is split once, at partition time, into
LabeledDocument (label ∈ {0, 1}) and UnlabeledDocument. Downstream code
never re-checks "is the label missing?" on raw rows.
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Union

import pandas as pd

from comment_classifier.core.errors import InvalidInputError


BINARY_LABELS = (0, 1)


@dataclass(frozen=True)
class LabeledDocument:
    id: int
    text: str
    label: int


@dataclass(frozen=True)
class UnlabeledDocument:
    id: int
    text: str

    def with_label(self, label) -> LabeledDocument:
        """Promote to a labeled document once a human supplies the label."""
        value = coerce_label(label)
        if value is None:
            raise InvalidInputError("Cannot assign a missing label", document_id=self.id)
        return LabeledDocument(id=self.id, text=self.text, label=value)


Document = Union[LabeledDocument, UnlabeledDocument]


def coerce_label(raw) -> Optional[int]:
    """
    Normalize a raw label to 0 / 1 / None.

    None, NaN and empty strings mean "not labeled yet". Anything that is not
    0 or 1 after conversion is rejected.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if raw == "":
            return None
    if not isinstance(raw, str) and pd.isna(raw):
        return None
    try:
        value = int(float(raw))
    except (TypeError, ValueError):
        raise InvalidInputError(f"Label {raw!r} is not binary", label=raw)
    if value not in BINARY_LABELS or float(raw) != value:
        raise InvalidInputError(f"Label {raw!r} is not binary", label=raw)
    return value


def make_document(doc_id, text, label=None) -> Document:
    """Build the right variant for one raw row."""
    try:
        value = int(doc_id)
    except (TypeError, ValueError, OverflowError):
        raise InvalidInputError(f"Document id {doc_id!r} is not an integer", document_id=doc_id)
    # int() truncates floats: 1.5 must not become 1
    if not isinstance(doc_id, str) and doc_id != value:
        raise InvalidInputError(f"Document id {doc_id!r} is not an integer", document_id=doc_id)
    doc_id = value
    value = coerce_label(label)
    text = "" if text is None else str(text)
    if value is None:
        return UnlabeledDocument(id=doc_id, text=text)
    return LabeledDocument(id=doc_id, text=text, label=value)


def partition_pool(
    documents: Iterable[Document],
) -> tuple[list[LabeledDocument], list[UnlabeledDocument]]:
    """
    Split the pool into (labeled, unlabeled), preserving input order.

    Raises:
        InvalidInputError: on duplicate ids
    """
    labeled, unlabeled = [], []
    seen = set()
    for doc in documents:
        if doc.id in seen:
            raise InvalidInputError("Duplicate document id", document_id=doc.id)
        seen.add(doc.id)
        if isinstance(doc, LabeledDocument):
            labeled.append(doc)
        else:
            unlabeled.append(doc)
    return labeled, unlabeled
