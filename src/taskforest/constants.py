STATE_DIR_NAME = ".taskforest"
CONFIG_FILE = "config.yaml"
TASKS_FILE = "tasks.json"
BACKUP_DIR = "backups"
BACKUP_PREFIX = "tasks-"
ARTIFACTS_DIR = "artifacts"
EVENTS_FILE = "task_events.jsonl"

DEFAULT_TAG = "main"
DEFAULT_TAG_NAME = "Main Tasks"
DEFAULT_TAG_DESCRIPTION = "Primary task list"
DEFAULT_BACKUP_LIMIT = 10

SCHEMA_VERSION = "1.0.0"

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000

# Urgency weights for ready-task ordering (days until due -> bonus).
URGENCY_OVERDUE = 10
URGENCY_DUE_WITHIN = (
    (1, 8),
    (3, 6),
    (7, 4),
)
