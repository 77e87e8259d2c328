"""Static metadata describing ExamSession."""

APP_NAME = "ExamSession"
APP_VERSION = "0.1.0"
