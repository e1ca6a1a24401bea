"""
FastAPI Backend — Comment Classifier with Active Learning.
"""
import threading

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from comment_classifier.active_learning.session import ActiveLearningSession, SessionConfig
from comment_classifier.core import session_store
from comment_classifier.core.documents import make_document
from comment_classifier.core.errors import InvalidInputError
from comment_classifier.database import database as db
from comment_classifier.evaluation.evaluator import top_terms
from comment_classifier.evaluation.metrics import to_json_safe
from comment_classifier.model.schemas import (
    CoefficientsResponse,
    DocumentsRequest,
    DocumentsResponse,
    LabelsRequest,
    LabelsResponse,
    ModelSummary,
    QueryResponse,
    StatsResponse,
    TrainRequest,
    TrainResponse,
)
from comment_classifier.training.data_preparation import documents_from_records


app = FastAPI(title="Comment Classifier API (L1 logistic path + active learning)")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# one training round at a time; rounds are numbered from the database
_train_lock = threading.Lock()


def _plain(value):
    if value is None or isinstance(value, (str, int, float, bool, list, tuple, dict)):
        return value
    return str(value)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    context = {k: _plain(v) for k, v in exc.context.items()}
    return JSONResponse(
        status_code=400,
        content={"detail": exc.args[0], "context": to_json_safe(context)},
    )


def _trained_session() -> ActiveLearningSession:
    session = session_store.find_session()
    if session is None or session.model is None:
        raise HTTPException(status_code=404, detail="No trained model. Run: POST /train")
    return session


def _lambda_selector(s: str):
    """'lambda.min' / 'lambda.1se', or a numeric λ on the fitted path."""
    try:
        return float(s)
    except ValueError:
        return s


# ---------- Documents ----------
@app.post("/documents", response_model=DocumentsResponse)
def add_documents(req: DocumentsRequest):
    """Store comments (labeled or not). The next /train picks them up."""
    documents = [make_document(d.id, d.text, d.label) for d in req.documents]
    ids = [d.id for d in documents]
    if len(set(ids)) != len(ids):
        raise InvalidInputError("Duplicate document id in request")
    stored = db.upsert_documents(documents)
    # the pool changed: the current session no longer matches it
    session_store.reset()
    return DocumentsResponse(stored=stored, total=db.get_stats()["total"])


@app.get("/documents/stats", response_model=StatsResponse)
def document_stats():
    return StatsResponse(**db.get_stats())


@app.get("/documents/{doc_id}")
def get_document(doc_id: int):
    """One stored comment with its label and split."""
    record = db.get_document(doc_id)
    if not record:
        raise HTTPException(status_code=404, detail="Document not found")
    return record


@app.delete("/documents")
def clear_documents():
    """Delete every document and round, and drop the in-memory session."""
    with _train_lock:
        deleted_count = db.clear_all()
        session_store.reset()
    return {"message": f"Deleted {deleted_count} documents", "deleted": deleted_count}


# ---------- Training ----------
@app.post("/train", response_model=TrainResponse)
def train(req: TrainRequest):
    """
    Run one active-learning round on the stored pool:
    CV-fitted L1 path → test evaluation → next batch to label.
    """
    overrides = {k: v for k, v in req.model_dump().items() if v is not None}
    if "penalty_sequence" in overrides:
        overrides["penalty_sequence"] = tuple(overrides["penalty_sequence"])

    with _train_lock:
        session = session_store.find_session()
        if session is None or overrides:
            test_ids = db.get_test_ids() or None
            session = session_store.create_session(
                documents_from_records(db.get_documents()),
                config=SessionConfig(**overrides),
                test_ids=test_ids,
            )
            if test_ids is None:
                db.mark_test_split(session.test_ids)

        result = session.run_round()
        record = to_json_safe(result.to_dict())
        record["round"] = db.get_round_count() + 1
        db.save_round(record)
    return TrainResponse(**record)


# ---------- Active learning ----------
@app.get("/query", response_model=QueryResponse)
def query(batch_size: int = Query(10, ge=1)):
    """Most uncertain unlabeled documents under the current model."""
    session = _trained_session()
    batch = session.query(batch_size)
    return QueryResponse(
        selector=session.config.selection_lambda,
        batch=[s.to_dict() for s in batch],
    )


@app.post("/labels", response_model=LabelsResponse)
def submit_labels(req: LabelsRequest):
    """Record human labels; they join the training set at the next /train."""
    labeled = db.set_labels(req.labels)
    session = session_store.find_session()
    if session is not None:
        with session.lock:
            known = {k: v for k, v in req.labels.items() if k in session.unlabeled}
            session.submit_labels(known)
    return LabelsResponse(labeled=labeled, remaining_unlabeled=db.get_stats()["unlabeled"])


# ---------- Model ----------
@app.get("/model", response_model=ModelSummary)
def model_summary():
    session = _trained_session()
    model = session.model
    n_nonzero = model.path.n_nonzero
    return ModelSummary(
        round=db.get_round_count(),
        n_features=model.path.n_features,
        n_lambda=int(model.path.lambdas.size),
        lambda_min=model.lambda_min,
        lambda_1se=model.lambda_1se,
        nonzero_at_lambda_min=int(n_nonzero[model.path.index_of(model.lambda_min)]),
        nonzero_at_lambda_1se=int(n_nonzero[model.path.index_of(model.lambda_1se)]),
        skipped_lambdas=model.cv.skipped_lambdas,
        measure=model.cv.measure,
        n_folds=model.cv.n_folds,
    )


@app.get("/model/coefficients", response_model=CoefficientsResponse)
def model_coefficients(s: str = "lambda.1se", n: int = Query(10, ge=1)):
    """Most positive / most negative indicative terms at λ (selector or value)."""
    session = _trained_session()
    model = session.model
    selector = _lambda_selector(s)
    positive, negative = top_terms(model, selector, n=n)
    return CoefficientsResponse(**{
        "selector": s,
        "lambda": model.resolve_lambda(selector),
        "intercept": model.intercept_at(selector),
        "positive": [{"term": t, "coefficient": c} for t, c in positive],
        "negative": [{"term": t, "coefficient": c} for t, c in negative],
    })


@app.get("/rounds")
def rounds():
    """History of every training round."""
    records = db.get_rounds()
    return {"total": len(records), "data": records}
