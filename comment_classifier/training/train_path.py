"""
L1 Logistic Path Training — Main Script
========================================
Pipeline 6 steps:
  1. Load the comment table (CSV: id, text, label)
  2. Split labeled documents, build vocabulary + count features
  3. Fit the L1 logistic path, k-fold CV → λ_min / λ_1se
  4. Evaluate on the held-out test set at both λ
  5. Save model artifacts (.pkl) + CV curve + reports
  6. Metadata & next batch of documents to label

Usage:
  python -m comment_classifier.training.train_path --data data/comments.csv
"""
import argparse
import json
import time
from datetime import datetime
from pathlib import Path

import joblib
import pandas as pd

from comment_classifier.active_learning.session import ActiveLearningSession, SessionConfig
from comment_classifier.core.logging_config import setup_logging
from comment_classifier.evaluation.evaluator import top_terms
from comment_classifier.evaluation.metrics import (
    save_confusion_matrix_csv,
    save_cv_curve_csv,
    save_metrics_json,
    save_metrics_txt,
    to_json_safe,
)
from comment_classifier.training.config import (
    BATCH_SIZE,
    DATASET_PATH,
    MODEL_DIR,
    MODEL_VERSION,
    N_FOLDS,
    N_LAMBDA,
    RANDOM_STATE,
    RESULTS_DIR,
)
from comment_classifier.training.data_preparation import load_documents_csv


def main(
    data_path=DATASET_PATH,
    n_folds: int = N_FOLDS,
    seed: int = RANDOM_STATE,
    batch_size: int = BATCH_SIZE,
    n_lambda: int = N_LAMBDA,
    model_dir: Path = MODEL_DIR,
    results_dir: Path = RESULTS_DIR,
) -> dict:
    print("=" * 60)
    print("  🚀 L1 Logistic Path Training Pipeline")
    print(f"  Version: {MODEL_VERSION}")
    print(f"  Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    t_start = time.perf_counter()

    # ============================================================
    # STEP 1: Load documents
    # ============================================================
    print(f"\n📂 Step 1: Loading documents from {data_path}...")
    documents = load_documents_csv(data_path)
    print(f"  ✅ {len(documents)} documents")

    # ============================================================
    # STEP 2: Split + features
    # ============================================================
    print("\n🔧 Step 2: Splitting labeled documents...")
    config = SessionConfig(n_folds=n_folds, seed=seed, batch_size=batch_size, n_lambda=n_lambda)
    session = ActiveLearningSession(documents, config=config)
    print(f"  ✅ Train: {len(session.train_docs)} | Test: {len(session.test_docs)} | Unlabeled: {len(session.unlabeled)}")

    # ============================================================
    # STEP 3: Fit path + cross-validation
    # ============================================================
    print(f"\n🔧 Step 3: Fitting L1 path with {n_folds}-fold CV...")
    result = session.run_round()
    model = result.model
    print(f"  ✅ Vocabulary size: {result.n_features}")
    print(f"  ✅ λ path: {model.path.lambdas.size} values, {len(result.skipped_lambdas)} skipped")
    print(f"  ✅ λ_min = {model.lambda_min:.6g}")
    print(f"  ✅ λ_1se = {model.lambda_1se:.6g}")

    # ============================================================
    # STEP 4: Evaluation
    # ============================================================
    print("\n📊 Step 4: Evaluation on the test set...")
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    y_test = [d.label for d in session.test_docs]
    evaluation = {}
    for selector, report in result.evaluations.items():
        tag = selector.replace(".", "_")
        print(f"\n  [{selector}] λ = {report.lam:.6g}")
        print(f"    Accuracy:  {report.accuracy:.4f}")
        print(f"    Precision: {report.precision:.4f}")
        print(f"    Recall:    {report.recall:.4f}")
        print(f"    F1:        {report.f1:.4f}")
        if report.degenerate:
            print(f"    ⚠️  Undefined: {', '.join(report.degenerate)}")
        save_confusion_matrix_csv(report.confusion_matrix, str(results_dir / f"confusion_matrix_{tag}.csv"))
        save_metrics_json(report.to_dict(), str(results_dir / f"evaluation_report_{tag}.json"))
        save_metrics_txt(y_test, report.predictions, str(results_dir / f"evaluation_report_{tag}.txt"), lam=report.lam)
        evaluation[selector] = report.to_dict()

    positive, negative = top_terms(model, "lambda.1se", n=10)
    print("\n  Most indicative terms (λ_1se):")
    print(f"    + {', '.join(t for t, _ in positive) or '—'}")
    print(f"    − {', '.join(t for t, _ in negative) or '—'}")

    # ============================================================
    # STEP 5: Save model artifacts
    # ============================================================
    print("\n💾 Step 5: Saving model artifacts...")
    model_dir = Path(model_dir)
    model_dir.mkdir(parents=True, exist_ok=True)

    model_path = model_dir / "model.pkl"
    joblib.dump(model, model_path)
    print(f"  ✅ {model_path}")

    normalizer_path = model_dir / "normalizer.pkl"
    joblib.dump(session.normalizer, normalizer_path)
    print(f"  ✅ {normalizer_path}")

    curve_path = save_cv_curve_csv(model.cv.curve(), str(model_dir / "cv_curve.csv"))
    print(f"  ✅ {curve_path}")

    # ============================================================
    # STEP 6: Metadata & next batch
    # ============================================================
    print("\n📋 Step 6: Saving metadata & next labeling batch...")
    batch_path = model_dir / "query_batch.csv"
    pd.DataFrame([s.to_dict() for s in result.batch]).to_csv(batch_path, index=False)
    print(f"  ✅ {batch_path} ({len(result.batch)} documents)")

    elapsed = time.perf_counter() - t_start
    metadata = {
        "version": MODEL_VERSION,
        "trained_at": datetime.now().isoformat(),
        "training_time_seconds": round(elapsed, 2),
        "config": {
            "n_folds": n_folds,
            "seed": seed,
            "measure": config.measure,
            "n_lambda": config.n_lambda,
            "min_doc_frequency": config.min_doc_frequency,
            "vocabulary_from": config.vocabulary_from,
        },
        "data": {
            "total_documents": len(documents),
            "train_documents": result.n_train,
            "test_documents": result.n_test,
            "unlabeled_documents": result.n_unlabeled,
            "vocabulary_size": result.n_features,
        },
        "lambda_min": model.lambda_min,
        "lambda_1se": model.lambda_1se,
        "skipped_lambdas": result.skipped_lambdas,
        "test_ids": session.test_ids,
        "evaluation": evaluation,
    }
    metadata_path = model_dir / "metadata.json"
    with open(metadata_path, "w", encoding="utf-8") as f:
        json.dump(to_json_safe(metadata), f, ensure_ascii=False, indent=2)
    print(f"  ✅ {metadata_path}")

    # Summary
    print("\n" + "=" * 60)
    print("  ✅ TRAINING COMPLETE")
    print("=" * 60)
    print(f"  Version:     {MODEL_VERSION}")
    print(f"  λ_min:       {model.lambda_min:.6g}")
    print(f"  λ_1se:       {model.lambda_1se:.6g}")
    print(f"  Vocab size:  {result.n_features}")
    print(f"  Total time:  {elapsed:.2f}s")
    print(f"  Output dir:  {model_dir}")
    print("=" * 60)

    return metadata


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Train the L1 logistic path comment classifier")
    parser.add_argument("--data", "-d", default=str(DATASET_PATH), help="CSV with id, text, label columns")
    parser.add_argument("--folds", "-k", type=int, default=N_FOLDS)
    parser.add_argument("--seed", type=int, default=RANDOM_STATE)
    parser.add_argument("--batch-size", "-b", type=int, default=BATCH_SIZE)
    parser.add_argument("--n-lambda", type=int, default=N_LAMBDA)
    args = parser.parse_args()
    setup_logging()
    main(args.data, n_folds=args.folds, seed=args.seed, batch_size=args.batch_size, n_lambda=args.n_lambda)
