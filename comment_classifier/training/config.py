"""
Training Configuration — Hyperparameters & Paths.
==================================================
All pipeline settings live in this one file. LOG_LEVEL / LOG_JSON and the
data/model paths can be overridden through the environment.
"""
import os
from pathlib import Path

# ========================
# PATHS
# ========================
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
PACKAGE_DIR = PROJECT_ROOT / "comment_classifier"

# Data sources (CSV with columns id, text, label; empty label = unlabeled)
DATASET_PATH = Path(os.getenv("COMMENT_DATASET", str(PROJECT_ROOT / "data" / "comments.csv")))

# Model output
MODEL_DIR = Path(os.getenv("COMMENT_MODEL_DIR", str(PACKAGE_DIR / "resources" / "model")))
RESULTS_DIR = Path(os.getenv("COMMENT_RESULTS_DIR", str(PACKAGE_DIR / "evaluation" / "results")))

# Document / label store
DB_PATH = Path(os.getenv("COMMENT_DB_PATH", str(PACKAGE_DIR / "resources" / "database" / "documents.db")))

# ========================
# INPUT TABLE
# ========================
ID_COLUMN = "id"
TEXT_COLUMN = "text"
LABEL_COLUMN = "label"   # "attack" / "sentiment" in the course datasets

# ========================
# FEATURES
# ========================
MIN_DOC_FREQUENCY = 2     # None → keep full vocabulary
MIN_TERM_FREQUENCY = None
BINARY_FEATURES = False
VOCABULARY_FROM = "corpus"  # "corpus" | "train"
MIN_TOKEN_LENGTH = 2

# ========================
# L1 LOGISTIC PATH
# ========================
N_LAMBDA = 100
LAMBDA_MIN_RATIO = None   # None → 1e-4 if n >= p else 0.01
STANDARDIZE = True
CONVERGENCE_TOL = 1e-7
MAX_ITER = 100000         # coordinate-descent passes per λ

# ========================
# CROSS-VALIDATION
# ========================
N_FOLDS = 5
CV_MEASURE = "deviance"   # "deviance" | "class" | "mae"
N_JOBS = 1                # fold workers (threads)

# ========================
# TRAIN / TEST SPLIT
# ========================
TEST_SIZE = 0.2
RANDOM_STATE = 42

# ========================
# ACTIVE LEARNING
# ========================
BATCH_SIZE = 10
MAX_ROUNDS = 5
SELECTION_LAMBDA = "lambda.1se"   # λ used to rank the unlabeled pool

# ========================
# LOGGING
# ========================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "False") == "True"

# ========================
# VERSIONING
# ========================
MODEL_VERSION = "1.0.0"
