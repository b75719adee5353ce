MAX_UPLOAD_BYTES = 50 * 1024 * 1024    # 50 MB (decks only, no video)
MAX_REQUEST_BYTES = 60 * 1024 * 1024   # 60 MB (deck + form fields)
CHUNK_SIZE = 1024 * 1024
UNSET = object()

BASE_CATEGORY_SCORE = 60
MIN_CATEGORY_SCORE = 30
MAX_CATEGORY_SCORE = 100
STRENGTH_THRESHOLD = 75
WEAKNESS_THRESHOLD = 60
MAX_RECOMMENDATIONS = 5

DEFAULT_MAX_CONTENT_LENGTH = 4000
DEFAULT_ANALYSIS_TIMEOUT_SECONDS = 30.0
TEXT_EXCERPT_CHARS = 1000
MAX_ERROR_CHARS = 1200
