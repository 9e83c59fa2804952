DEFAULT_EXECUTION_LIMIT = 50
DEFAULT_DETAIL_LIMIT = 20
DEFAULT_BATCH_SIZE = 5
DEFAULT_HISTORY_DAYS = 30
DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_WORKFLOW_LIST_LIMIT = 100

# Levels below a node's run list: run -> connection outputs -> branch -> item.
MAX_WALK_DEPTH = 8

WEBHOOK_COMMANDS = ("start", "stop", "restart", "status")
