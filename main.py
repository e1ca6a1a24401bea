import uvicorn

from comment_classifier.app import app
from comment_classifier.core.logging_config import setup_logging

if __name__ == "__main__":
    setup_logging()
    uvicorn.run(app, host="0.0.0.0", port=10805)
