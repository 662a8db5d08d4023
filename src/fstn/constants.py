"""Constants for fstn."""

# Server used when nothing else is configured
DEFAULT_SERVER = "https://faasten.princeton.systems"

# Credential profile used when --user / FSTN_USER are not given
DEFAULT_PROFILE = "default"

# Environment overrides
SERVER_ENV = "FSTN_SERVER"
PROFILE_ENV = "FSTN_USER"
TIMEOUT_ENV = "FSTN_TIMEOUT"
CONFIG_DIR_ENV = "FSTN_CONFIG_DIR"

# Credential file (inside the per-user config dir)
APP_NAME = "fstn"
CREDENTIALS_FILE = "credentials"
GLOBAL_SECTION = "global"

# Wire paths (relative to the server endpoint)
INVOKE_PATH = "faasten/invoke"
PING_PATH = "faasten/ping"
PING_SCHEDULER_PATH = "faasten/ping/scheduler"
ME_PATH = "me"
LOGIN_PATH = "login/cas"

# Gate handling store operations, relative to the user's home
FSUTIL_GATE = "~:fsutil"

# Label given to new directories and files unless one is passed
DEFAULT_LABEL = "T,T"

# Chunk size for streaming file reads and downloads
CHUNK_SIZE = 8192
