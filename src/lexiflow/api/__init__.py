"""HTTP API: FastAPI app and data stream encoding."""
