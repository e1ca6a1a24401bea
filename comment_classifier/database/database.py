"""
Database module for the document pool, labels and round history.
Uses SQLite — one row per document, one row per active-learning round.
"""
import json
import logging
import sqlite3
from typing import Iterable, Mapping, Optional

from comment_classifier.core.documents import Document, LabeledDocument, coerce_label
from comment_classifier.core.errors import InvalidInputError
from comment_classifier.evaluation.metrics import to_json_safe
from comment_classifier.training.config import DB_PATH

logger = logging.getLogger(__name__)


def get_connection():
    """Get database connection."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Create the documents / rounds tables if they do not exist."""
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS documents (
            id INTEGER PRIMARY KEY,
            text TEXT NOT NULL,
            label INTEGER,
            split TEXT,
            label_source TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            labeled_at TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS rounds (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            round INTEGER NOT NULL,
            n_train INTEGER NOT NULL,
            n_test INTEGER NOT NULL,
            n_unlabeled INTEGER NOT NULL,
            n_features INTEGER NOT NULL,
            lambda_min REAL,
            lambda_1se REAL,
            evaluations TEXT NOT NULL,
            batch TEXT NOT NULL
        )
    """)

    conn.commit()
    conn.close()
    logger.info("Database initialized at: %s", DB_PATH)


# ---------- Documents ----------
def upsert_documents(documents: Iterable[Document], label_source: str = "import") -> int:
    """
    Insert documents, replacing text/label of ids already stored.
    Returns the number of rows written.
    """
    rows = []
    for doc in documents:
        label = doc.label if isinstance(doc, LabeledDocument) else None
        rows.append((doc.id, doc.text, label, label_source if label is not None else None))

    conn = get_connection()
    cursor = conn.cursor()
    cursor.executemany("""
        INSERT INTO documents (id, text, label, label_source, labeled_at)
        VALUES (?, ?, ?, ?, CASE WHEN ? IS NULL THEN NULL ELSE CURRENT_TIMESTAMP END)
        ON CONFLICT(id) DO UPDATE SET
            text = excluded.text,
            label = excluded.label,
            label_source = excluded.label_source,
            labeled_at = excluded.labeled_at
    """, [(doc_id, text, label, source, label) for doc_id, text, label, source in rows])
    conn.commit()
    conn.close()
    return len(rows)


def get_documents(labeled: Optional[bool] = None) -> list[dict]:
    """All documents ordered by id; filter on labeled / unlabeled."""
    query = "SELECT * FROM documents"
    if labeled is True:
        query += " WHERE label IS NOT NULL"
    elif labeled is False:
        query += " WHERE label IS NULL"
    query += " ORDER BY id"

    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute(query)
    rows = cursor.fetchall()
    conn.close()
    return [dict(row) for row in rows]


def get_document(doc_id) -> Optional[dict]:
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM documents WHERE id = ?", (int(doc_id),))
    row = cursor.fetchone()
    conn.close()
    return dict(row) if row else None


def set_labels(labels: Mapping, label_source: str = "annotator") -> int:
    """
    Label unlabeled documents. Nothing is written unless every id exists,
    is still unlabeled and every label is 0/1.
    """
    conn = get_connection()
    cursor = conn.cursor()
    updates = []
    for doc_id, raw in labels.items():
        cursor.execute("SELECT label FROM documents WHERE id = ?", (int(doc_id),))
        row = cursor.fetchone()
        if row is None:
            conn.close()
            raise InvalidInputError("Unknown document", document_id=doc_id)
        if row["label"] is not None:
            conn.close()
            raise InvalidInputError("Document is already labeled", document_id=doc_id)
        label = coerce_label(raw)
        if label is None:
            conn.close()
            raise InvalidInputError("Label must be 0 or 1", document_id=doc_id, label=raw)
        updates.append((label, label_source, int(doc_id)))

    cursor.executemany("""
        UPDATE documents
        SET label = ?, label_source = ?, labeled_at = CURRENT_TIMESTAMP
        WHERE id = ?
    """, updates)
    conn.commit()
    conn.close()
    return len(updates)


def mark_test_split(test_ids: Iterable) -> None:
    """Record the fixed test split; every other labeled document is train."""
    test_ids = [int(i) for i in test_ids]
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("UPDATE documents SET split = 'train' WHERE label IS NOT NULL")
    cursor.executemany("UPDATE documents SET split = 'test' WHERE id = ?", [(i,) for i in test_ids])
    conn.commit()
    conn.close()


def get_test_ids() -> list[int]:
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT id FROM documents WHERE split = 'test' ORDER BY id")
    ids = [row["id"] for row in cursor.fetchall()]
    conn.close()
    return ids


def get_stats() -> dict:
    """Document counts per label and split."""
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("""
        SELECT
            COUNT(*) AS total,
            SUM(CASE WHEN label IS NULL THEN 1 ELSE 0 END) AS unlabeled,
            SUM(CASE WHEN label = 1 THEN 1 ELSE 0 END) AS positive,
            SUM(CASE WHEN label = 0 THEN 1 ELSE 0 END) AS negative,
            SUM(CASE WHEN split = 'test' THEN 1 ELSE 0 END) AS test
        FROM documents
    """)
    row = dict(cursor.fetchone())
    conn.close()
    return {key: int(value or 0) for key, value in row.items()}


# ---------- Rounds ----------
def save_round(result: dict) -> int:
    """
    Save a RoundResult.to_dict() record.
    Returns the ID of the new record.
    """
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO rounds
        (round, n_train, n_test, n_unlabeled, n_features,
         lambda_min, lambda_1se, evaluations, batch)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        result["round"], result["n_train"], result["n_test"],
        result["n_unlabeled"], result["n_features"],
        result["lambda_min"], result["lambda_1se"],
        json.dumps(to_json_safe(result["evaluations"]), ensure_ascii=False),
        json.dumps(to_json_safe(result["batch"]), ensure_ascii=False),
    ))
    record_id = cursor.lastrowid
    conn.commit()
    conn.close()
    return record_id


def get_rounds() -> list[dict]:
    """All saved rounds, oldest first."""
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM rounds ORDER BY id")
    rows = cursor.fetchall()
    conn.close()

    result = []
    for row in rows:
        record = dict(row)
        record["evaluations"] = json.loads(record["evaluations"])
        record["batch"] = json.loads(record["batch"])
        result.append(record)
    return result


def get_round_count() -> int:
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT COUNT(*) FROM rounds")
    count = cursor.fetchone()[0]
    conn.close()
    return count


def clear_all() -> int:
    """Delete every document and round. Returns number of deleted documents."""
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("DELETE FROM documents")
    affected = cursor.rowcount
    cursor.execute("DELETE FROM rounds")
    conn.commit()
    conn.close()
    return affected


# Initialize database when module is imported
init_db()
