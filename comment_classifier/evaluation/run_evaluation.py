"""
Evaluation Runner Script
=========================
Evaluates a saved model (training/train_path.py artifacts):
  1. Load model + normalizer + metadata
  2. Load the labeled documents (all, or only the recorded test split)
  3. Map them onto the model's vocabulary
  4. Confusion matrix + metrics at λ_min and λ_1se
  5. Export reports (CSV, JSON, TXT)

Usage:
  python -m comment_classifier.evaluation.run_evaluation --data data/comments.csv
  python -m comment_classifier.evaluation.run_evaluation --split test
"""
import argparse
import json
from pathlib import Path

import joblib

from comment_classifier.core.documents import LabeledDocument
from comment_classifier.core.errors import InvalidInputError
from comment_classifier.core.features import transform
from comment_classifier.core.logging_config import setup_logging
from comment_classifier.evaluation.evaluator import evaluate
from comment_classifier.evaluation.metrics import (
    save_confusion_matrix_csv,
    save_metrics_json,
    save_metrics_txt,
)
from comment_classifier.training.config import DATASET_PATH, MODEL_DIR, RESULTS_DIR
from comment_classifier.training.data_preparation import load_documents_csv

SELECTORS = ("lambda.min", "lambda.1se")


def load_artifacts(model_dir: Path = MODEL_DIR):
    """(FittedModel, normalizer, metadata) saved by the training script."""
    model_dir = Path(model_dir)
    model_path = model_dir / "model.pkl"
    if not model_path.exists():
        raise FileNotFoundError(
            f"No model at {model_path}. Run: python -m comment_classifier.training.train_path"
        )
    model = joblib.load(model_path)
    normalizer = joblib.load(model_dir / "normalizer.pkl")
    with open(model_dir / "metadata.json", "r", encoding="utf-8") as f:
        metadata = json.load(f)
    return model, normalizer, metadata


def run_evaluation(
    data_path=DATASET_PATH,
    split: str = "all",
    model_dir: Path = MODEL_DIR,
    results_dir: Path = RESULTS_DIR,
) -> dict:
    """
    Evaluate the saved model on labeled documents.

    Args:
        split: "all" labeled documents or only the "test" ids recorded at training time
    """
    print("\n📂 Loading model artifacts...")
    model, normalizer, metadata = load_artifacts(model_dir)
    print(f"   Version {metadata['version']}, vocabulary {len(model.vocabulary)} terms")

    documents = [d for d in load_documents_csv(data_path) if isinstance(d, LabeledDocument)]
    if split == "test":
        test_ids = set(metadata["test_ids"])
        documents = [d for d in documents if d.id in test_ids]
    if not documents:
        raise InvalidInputError("No labeled documents to evaluate", split=split)
    print(f"   {len(documents)} labeled documents ({split})")

    features = transform(
        [normalizer.normalize(d.text) for d in documents],
        model.vocabulary,
        document_ids=[d.id for d in documents],
    )
    y_true = [d.label for d in documents]

    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    results = {}
    for selector in SELECTORS:
        report = evaluate(model, selector, features, y_true)
        tag = selector.replace(".", "_")

        print(f"\n{'=' * 60}")
        print(f"  🚀 EVALUATION — {selector} (λ = {report.lam:.6g})")
        print(f"{'=' * 60}")
        print(report.confusion_matrix.to_string())
        print(f"\n   Accuracy:  {report.accuracy:.4f}")
        print(f"   Precision: {report.precision:.4f}")
        print(f"   Recall:    {report.recall:.4f}")
        print(f"   F1:        {report.f1:.4f}")
        if report.degenerate:
            print(f"   ⚠️  Undefined (zero denominator): {', '.join(report.degenerate)}")

        save_confusion_matrix_csv(report.confusion_matrix, str(results_dir / f"confusion_matrix_{tag}.csv"))
        save_metrics_json(report.to_dict(), str(results_dir / f"evaluation_report_{tag}.json"))
        save_metrics_txt(y_true, report.predictions, str(results_dir / f"evaluation_report_{tag}.txt"), lam=report.lam)
        results[selector] = report

    print(f"\n{'=' * 60}")
    print(f"  ✅ EVALUATION COMPLETE — {len(documents)} documents")
    print(f"{'=' * 60}")
    return results


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Evaluate the saved comment classifier")
    parser.add_argument("--data", "-d", default=str(DATASET_PATH), help="CSV with id, text, label columns")
    parser.add_argument("--split", "-s", choices=["all", "test"], default="all")
    args = parser.parse_args()
    setup_logging()
    run_evaluation(args.data, split=args.split)
