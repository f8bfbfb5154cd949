STATE_DIR_NAME = ".job_orchestrator"
CONFIG_FILE = "config.yaml"
JOBS_FILE = "jobs.yaml"
JOBS_LOCK_FILE = "jobs.lock"

DEFAULT_MAX_TASKS = 100
DEFAULT_MAX_DEPTH = 10
DEFAULT_ABORT_ON_FAILURE = True
DEFAULT_PERSIST_INTERVAL_SECONDS = 10.0

ID_SEPARATOR = "-"

ABORT_ON_FAILURE_MESSAGE = "Previous task failed and abortOnFailure is true"
