"""
Constants and configuration values for packsync.

This module contains the hardcoded defaults, file names, timeouts, and
logging settings used throughout the application.
"""

# Application identity (used for platformdirs lookups and the User-Agent)
APP_NAME = "packsync"

# Fetch retry settings: the delay before retry n is n * DEFAULT_BACKOFF_STEP
DEFAULT_FETCH_RETRIES = 5
DEFAULT_BACKOFF_STEP = 0.25  # seconds
DEFAULT_REQUEST_TIMEOUT = 30  # seconds
DEFAULT_CONNECT_TIMEOUT = 10  # seconds
DEFAULT_CHUNK_SIZE = 8192
HASH_READ_CHUNK_SIZE = 64 * 1024

HTTP_STATUS_ERROR_THRESHOLD = 400
BYTES_PER_MEGABYTE = 1024 * 1024
FILE_SIZE_MB_LOGGING_THRESHOLD = 1.0

# Digest format: SHA-256, lowercase hex
DIGEST_HEX_LENGTH = 64
DIGEST_ALLOWED_CHARS = frozenset("0123456789abcdef")

# Default managed directory (the game folder a pack is installed into)
GAME_DIR_NAME = ".minecraft"
MACOS_GAME_DIR_NAME = "minecraft"

# Configuration file names
CONFIG_FILE_NAME = "packsync.yaml"
LOG_FILE_NAME = "packsync.log"

# Configuration keys
CONFIG_KEY_PACKS_URL = "PACKS_URL"
CONFIG_KEY_MANIFEST_URL = "MANIFEST_URL"
CONFIG_KEY_PACK = "PACK"
CONFIG_KEY_INSTALL_DIR = "INSTALL_DIR"
CONFIG_KEY_MAX_RETRIES = "MAX_FETCH_RETRIES"
CONFIG_KEY_BACKOFF_STEP = "FETCH_BACKOFF_STEP"
CONFIG_KEY_MAX_CONCURRENT = "MAX_CONCURRENT_FETCHES"
CONFIG_KEY_REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
CONFIG_KEY_LOG_LEVEL = "LOG_LEVEL"
CONFIG_KEY_LOG_DIR = "LOG_DIR"
CONFIG_KEYS = (
    CONFIG_KEY_PACKS_URL,
    CONFIG_KEY_MANIFEST_URL,
    CONFIG_KEY_PACK,
    CONFIG_KEY_INSTALL_DIR,
    CONFIG_KEY_MAX_RETRIES,
    CONFIG_KEY_BACKOFF_STEP,
    CONFIG_KEY_MAX_CONCURRENT,
    CONFIG_KEY_REQUEST_TIMEOUT,
    CONFIG_KEY_LOG_LEVEL,
    CONFIG_KEY_LOG_DIR,
)

# Logging configuration
LOGGER_NAME = "packsync"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Environment variable names
LOG_LEVEL_ENV_VAR = "PACKSYNC_LOG_LEVEL"
