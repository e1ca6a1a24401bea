"""
Pydantic models for API requests and responses.
"""
from typing import Optional

from pydantic import BaseModel, Field


# ---------- Documents ----------
class DocumentIn(BaseModel):
    """One comment; label missing / null = unlabeled."""
    id: int
    text: str
    label: Optional[int] = None


class DocumentsRequest(BaseModel):
    documents: list[DocumentIn]


class DocumentsResponse(BaseModel):
    stored: int
    total: int


class StatsResponse(BaseModel):
    total: int
    unlabeled: int
    positive: int
    negative: int
    test: int


# ---------- Training ----------
class TrainRequest(BaseModel):
    """Settings for one active-learning round (defaults from config.py)."""
    n_folds: Optional[int] = Field(default=None, ge=2)
    n_lambda: Optional[int] = Field(default=None, ge=1)
    penalty_sequence: Optional[list[float]] = None
    measure: Optional[str] = None            # "deviance" | "class" | "mae"
    seed: Optional[int] = None
    batch_size: Optional[int] = Field(default=None, ge=1)


class EvaluationOut(BaseModel):
    lam: float = Field(alias="lambda")
    selector: str
    n_documents: int
    confusion_matrix: list[list[int]]
    accuracy: Optional[float] = None         # null when undefined
    precision: Optional[float] = None
    recall: Optional[float] = None
    f1: Optional[float] = None
    degenerate: list[str] = []


class SampleOut(BaseModel):
    document_id: int
    probability: float
    uncertainty: float


class TrainResponse(BaseModel):
    round: int
    n_train: int
    n_test: int
    n_unlabeled: int
    n_features: int
    lambda_min: float
    lambda_1se: float
    skipped_lambdas: list[float]
    evaluations: dict[str, EvaluationOut]
    batch: list[SampleOut]


# ---------- Active learning ----------
class QueryResponse(BaseModel):
    selector: str
    batch: list[SampleOut]


class LabelsRequest(BaseModel):
    """document id → 0 / 1"""
    labels: dict[int, int]


class LabelsResponse(BaseModel):
    labeled: int
    remaining_unlabeled: int


# ---------- Model ----------
class ModelSummary(BaseModel):
    round: int
    n_features: int
    n_lambda: int
    lambda_min: float
    lambda_1se: float
    nonzero_at_lambda_min: int
    nonzero_at_lambda_1se: int
    skipped_lambdas: list[float]
    measure: str
    n_folds: int


class TermWeight(BaseModel):
    term: str
    coefficient: float


class CoefficientsResponse(BaseModel):
    selector: str
    lam: float = Field(alias="lambda")
    intercept: float
    positive: list[TermWeight]
    negative: list[TermWeight]
