"""Application entry point for the document scan OCR API server."""

import uvicorn

from doctrack_ocr.api.app import app
from doctrack_ocr.utils.config import load_config
from doctrack_ocr.utils.logger import setup_logging


def main() -> None:
    """Start the FastAPI application server."""
    config = load_config()
    setup_logging(config.log_level)
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
