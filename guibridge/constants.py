"""Default values shared by the bridge server and the in-process agent."""

APP_NAME_ENV = "GUIBRIDGE_APP_NAME"
SOCKET_ENV = "GUIBRIDGE_SOCKET"
SOURCE_ENV = "GUIBRIDGE_SOURCE"
LOG_LEVEL_ENV = "GUIBRIDGE_LOG_LEVEL"
MAX_MESSAGE_SIZE_ENV = "GUIBRIDGE_MAX_MESSAGE_SIZE"
BUS_TIMEOUT_ENV = "GUIBRIDGE_BUS_TIMEOUT"

SOCKET_FILE_NAME = "guibridge.sock"

# Base64 PNG screenshots routinely exceed a megabyte
MAX_MESSAGE_SIZE = 16 * 1024 * 1024
LENGTH_PREFIX_SIZE = 4

REQUEST_TIMEOUT = 10.0
BUS_CALL_TIMEOUT = 5.0
CONNECT_ATTEMPTS = 5
BACKOFF_INITIAL = 0.05
BACKOFF_MAX = 1.0

WAIT_TIMEOUT_MS = 5000
WAIT_INTERVAL_MS = 100

MAX_TREE_DEPTH = 64
MAX_TREE_NODES = 20000

HIGHLIGHT_COLOR = "#ff0000"
HIGHLIGHT_ALPHA = 200
HIGHLIGHT_DURATION_MS = 3000

FRAME_BUFFER_CAPACITY = 120
LOG_BUFFER_CAPACITY = 1000
LOG_BUFFER_MAX_BYTES = 1024 * 1024
LOG_ENTRY_MAX_BYTES = 16 * 1024

SCREENSHOT_WAIT_SECONDS = 5.0
SCREENSHOT_POLL_SECONDS = 0.1

IDENTICAL_THRESHOLD = 0.9999
