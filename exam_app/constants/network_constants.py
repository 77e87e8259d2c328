"""Network configuration constants for the exam session server."""

import os

DEFAULT_HOST: str = os.environ.get("EXAM_APP_HOST", "0.0.0.0")
DEFAULT_PORT: int = int(os.environ.get("EXAM_APP_PORT", "8000"))
