"""Smoke tests for the training / evaluation scripts and logging setup."""
import json
import logging

import pandas as pd
import pytest

from conftest import synthetic_comments
from comment_classifier.core.logging_config import ClassifierJsonFormatter, setup_logging
from comment_classifier.evaluation.run_evaluation import run_evaluation
from comment_classifier.training import train_path


@pytest.fixture
def dataset(tmp_path):
    rows = synthetic_comments(140, seed=4)
    df = pd.DataFrame(
        [{"id": i, "text": t, "label": lab if i < 120 else None} for i, t, lab in rows]
    )
    path = tmp_path / "comments.csv"
    df.to_csv(path, index=False)
    return path


def test_train_then_evaluate(dataset, tmp_path):
    model_dir = tmp_path / "model"
    results_dir = tmp_path / "results"
    metadata = train_path.main(
        dataset, n_lambda=10, batch_size=4, model_dir=model_dir, results_dir=results_dir
    )

    for name in ("model.pkl", "normalizer.pkl", "metadata.json", "cv_curve.csv", "query_batch.csv"):
        assert (model_dir / name).exists()
    assert metadata["lambda_1se"] >= metadata["lambda_min"]
    assert len(metadata["test_ids"]) == 24
    assert len(pd.read_csv(model_dir / "cv_curve.csv")) == 10
    assert len(pd.read_csv(model_dir / "query_batch.csv")) == 4
    assert (results_dir / "evaluation_report_lambda_min.json").exists()

    results = run_evaluation(dataset, split="test", model_dir=model_dir, results_dir=results_dir)
    assert set(results) == {"lambda.min", "lambda.1se"}
    assert results["lambda.min"].n_documents == 24
    assert results["lambda.min"].lam == metadata["lambda_min"]


def test_evaluation_without_model_fails(dataset, tmp_path):
    with pytest.raises(FileNotFoundError):
        run_evaluation(dataset, model_dir=tmp_path / "missing")


def test_json_logging(capsys):
    setup_logging("INFO", json_format=True)
    try:
        logging.getLogger("comment_classifier.test").info("round finished")
        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["message"] == "round finished"
        assert record["level"] == "INFO"
        assert record["logger"] == "comment_classifier.test"
        assert isinstance(logging.getLogger().handlers[0].formatter, ClassifierJsonFormatter)
    finally:
        setup_logging("WARNING", json_format=False)
