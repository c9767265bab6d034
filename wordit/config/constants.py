"""Constants for WordIt."""

from wordit import __version__

# Default paths
DEFAULT_CACHE_DIR = "data/documents"
DEFAULT_LOG_DIR = ".logs"
DEFAULT_CONFIG_FILE = "wordit.yaml"

# Artifact format
DOCX_EXTENSION = ".docx"
BACKUP_SUFFIX = ".bak"
LOCK_SUFFIX = ".lock"
SIDECAR_SUFFIX = ".json"
ARTIFACT_NAME_MAX_LENGTH = 100  # readable part of the file name
ARTIFACT_DIGEST_LENGTH = 16  # hex chars of the identity digest

# Generation
DEFAULT_GENERATION_TIMEOUT = 30.0  # seconds, whole pipeline
DEFAULT_DOCUMENT_AUTHOR = "wordit"
DEFAULT_CODE_FONT = "Consolas"

# Image pipeline
IMAGE_CONCURRENCY = 5  # hard ceiling, not configurable per call
DEFAULT_FETCH_TIMEOUT = 30.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 0.5
DEFAULT_RETRY_MAX_DELAY = 4.0
DEFAULT_LARGE_FILE_THRESHOLD = 10 * 1024 * 1024  # 10MB, warn only
DEFAULT_MAX_IMAGE_DIMENSION = 2048
DEFAULT_JPEG_QUALITY = 85
DEFAULT_IMAGE_CACHE_TTL = 300

# Image placement
DEFAULT_IMAGE_WIDTH_PX = 600
DEFAULT_IMAGE_HEIGHT_PX = 400
DEFAULT_MAX_IMAGE_WIDTH_IN = 6.0
DEFAULT_MAX_IMAGE_HEIGHT_IN = 8.0
PIXELS_PER_INCH = 96

# Formats python-docx can embed directly
EMBEDDABLE_IMAGE_FORMATS = {"PNG", "JPEG", "GIF", "BMP", "TIFF"}

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".svg", ".tif", ".tiff", ".ico"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".webm", ".avi", ".mkv", ".m4v"}

# Persistence locking
DEFAULT_LOCK_STALE_SECONDS = 10.0
DEFAULT_LOCK_RETRIES = 5
DEFAULT_LOCK_MIN_WAIT = 0.1
DEFAULT_LOCK_MAX_WAIT = 2.0

# URL validation
DEFAULT_ALLOWED_SCHEMES = ["http", "https"]

# HTTP
DEFAULT_USER_AGENT = f"Mozilla/5.0 (compatible; wordit/{__version__})"
