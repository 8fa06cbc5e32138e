"""
cardshuffle Constants

Centralized constants for timing, cache layout, the remote API and
image compression policy.
"""

# Base time units for TTL calculations
BASE_SECOND = 1
BASE_MINUTE = 60 * BASE_SECOND
BASE_HOUR = 60 * BASE_MINUTE


class SpeedConfig:
    """Shuffle speed and interval bounds."""

    MIN_SPEED = 1
    MAX_SPEED = 100
    DEFAULT_SPEED = 90

    MAX_INTERVAL_MS = 300  # slowest, speed=1
    MIN_INTERVAL_MS = 10  # fastest, speed=100


class CacheConfig:
    """Local cache layout and validity defaults."""

    DEFAULT_TTL = 5 * BASE_MINUTE
    SCHEMA_VERSION = 1
    DEFAULT_DIR = ".cardshuffle/cache"

    # Namespaced keys sharing the same TTL/versioning mechanism
    KEY_COLLECTION = "collection"
    KEY_SHUFFLE_SPEED = "settings.shuffle_speed"

    FILE_SUFFIX = ".json"


class APIConfig:
    """Remote collection API defaults."""

    DEFAULT_BASE_URL = "http://localhost:5000/api"
    DEFAULT_TIMEOUT = 10

    CARDS_PATH = "/cards"
    HEALTH_PATH = "/health"


class CardFields:
    """Wire field names used by the remote collection API."""

    ID = "_id"
    NAME = "name"
    IMAGE_URL = "imageUrl"
    LINK = "link"
    CREATED_AT = "createdAt"

    DEFAULT_NAME = "Unnamed Card"


class CompressionConfig:
    """Fixed image ingestion policy."""

    DEFAULT_QUALITY = 0.7
    DEFAULT_MAX_WIDTH = 800
    OUTPUT_FORMAT = "JPEG"
    OUTPUT_MIME = "image/jpeg"
    RAW_IMAGE_PREFIX = "data:image"


class HTTPStatusCodes:
    """HTTP status code constants."""

    OK = 200
    NOT_FOUND = 404

    @staticmethod
    def is_success(code: int) -> bool:
        """Check if status code indicates success (2xx)."""
        return 200 <= code < 300


class CLIDefaults:
    """CLI defaults and exit codes."""

    VERSION = "0.1.0"
    EXIT_SUCCESS = 0
    EXIT_ERROR = 1
    SHUFFLE_DURATION = 3.0
    CONFIG_ENV_VAR = "CARDSHUFFLE_CONFIG"
