"""Session, timer and grading constants shared across core and server layers."""

AUTO_SAVE_INTERVAL_SECONDS: float = 30.0
TICK_INTERVAL_SECONDS: float = 1.0

# Fractions of the full duration at which the countdown changes level.
WARNING_FRACTION: float = 0.10
CAUTION_FRACTION: float = 0.25

MIN_DURATION_MINUTES: int = 1
MAX_DURATION_MINUTES: int = 300
MIN_MCQ_OPTIONS: int = 2

# How long to wait for the first snapshot of a subscribed test record.
TEST_SNAPSHOT_TIMEOUT_SECONDS: float = 5.0

# Finished attempts stay readable in memory this long before they are dropped.
FINISHED_SESSION_RETENTION_SECONDS: float = 600.0
