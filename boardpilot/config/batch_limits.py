"""Execution and batch capacity constraints for BoardPilot.

These limits are enforced by the executor, the batch coordinator and the
validator. monday.com recommends small mutation windows; the pacing delay
keeps a full window run under the per-minute complexity budget.
"""

# Targets processed concurrently in one batch window.
BATCH_WINDOW_SIZE = 25

# People-column writes are heavier; assignment batches use smaller windows.
USER_ASSIGN_WINDOW_SIZE = 10

# Pause between two consecutive windows.
INTER_WINDOW_DELAY_SECONDS = 0.2

# Attempts per operation, the first one included.
MAX_EXECUTION_ATTEMPTS = 3

# Upper bound on any single recovery wait.
MAX_BACKOFF_SECONDS = 30.0

# Used when a rate-limit error does not say how long to wait.
DEFAULT_RETRY_AFTER_SECONDS = 60.0

# Data validation
MAX_ITEM_NAME_LENGTH = 255
MAX_TEXT_VALUE_LENGTH = 5000
LARGE_BATCH_WARNING = 100

# Board constraints
BOARD_ITEM_LIMIT = 10000
BOARD_ITEM_WARNING = 9000
BOARD_GROUP_LIMIT = 100
BOARD_AUTOMATION_WARNING = 50
