"""Central constants for unitsync.

Catalog endpoints, identifier grammar inputs and the default knobs used by the
sync pipeline. Numeric settings can be overridden through UNITSYNC_* environment
variables; the helpers below validate those overrides.

Environment Variables:
    UNITSYNC_MAX_RETRIES - Scheduler-level tries before a unit is abandoned (default: 3)
    UNITSYNC_CONCURRENCY - Crawl worker count (default: 3)
    UNITSYNC_VALIDATE_CONCURRENCY - Validation worker count (default: 5)
"""

import os

from unitsync.core.errors import InvalidConfigError

# =============================================================================
# Catalog
# =============================================================================

CATALOG_BASE_URL: str = "https://training.gov.au"

# Detail page for one unit of competency
UNIT_URL_TEMPLATE: str = CATALOG_BASE_URL + "/training/details/{code}/unitdetails"

# Sibling unit pages linked from a detail page (supersession links)
UNIT_LINK_PREFIX: str = "/training/details/"

# =============================================================================
# Identifier grammar
# =============================================================================

# Tokens that look like unit codes but are ordinary words in spreadsheets
IDENTIFIER_DENYLIST: frozenset = frozenset({
    "SCUBA", "HACCP", "HACC", "TAFE", "CERT", "DIPLOMA", "ADVANCED",
    "STATEMENT", "QUALIFICATION", "TRAINING", "EDUCATION",
    "SKILLS", "COMPETENCY", "ASSESSMENT", "EVIDENCE",
})

IDENTIFIER_MIN_LENGTH: int = 6
IDENTIFIER_MAX_LENGTH: int = 12
IDENTIFIER_MIN_DIGITS: int = 3

# =============================================================================
# Sync defaults
# =============================================================================

DEFAULT_MAX_RETRIES: int = 3
DEFAULT_CONCURRENCY: int = 3
DEFAULT_VALIDATE_CONCURRENCY: int = 5
MAX_CONCURRENCY: int = 5

# Randomized pause after each successful item (seconds)
ITEM_JITTER_MIN: float = 0.3
ITEM_JITTER_MAX: float = 0.6

# Store layout inside the data directory
CORPUS_FILENAME: str = "uoc.jsonl"
CLASSIFICATION_LOG_FILENAME: str = "error-log.json"
UNIT_CACHE_DIRNAME: str = "units"

# Markers that identify a rendered unit detail page
UNIT_PAGE_MARKERS: tuple = ("Unit of competency", "Performance Criteria", "Performance evidence")


def unit_url(code: str) -> str:
    """Build the canonical detail-page URL for a unit code."""
    return UNIT_URL_TEMPLATE.format(code=code)


# =============================================================================
# Helper Functions for Environment Variable Loading
# =============================================================================

def get_env_int(key: str, default: int) -> int:
    """Get integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Integer value from environment or default

    Raises:
        InvalidConfigError: If value is not a valid non-negative integer
    """
    value = os.getenv(key)
    if value is None or value == "":
        return default

    try:
        result = int(value)
    except ValueError:
        raise InvalidConfigError(key, value, "must be an integer")
    if result < 0:
        raise InvalidConfigError(key, value, "must be non-negative")
    return result


def get_env_float(key: str, default: float) -> float:
    """Get float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Float value from environment or default

    Raises:
        InvalidConfigError: If value is not a valid non-negative number
    """
    value = os.getenv(key)
    if value is None or value == "":
        return default

    try:
        result = float(value)
    except ValueError:
        raise InvalidConfigError(key, value, "must be a number")
    if result < 0:
        raise InvalidConfigError(key, value, "must be non-negative")
    return result


def get_env_bool(key: str, default: bool) -> bool:
    """Get boolean from environment variable ("true", "1", "yes" are truthy)."""
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value.lower() in ("true", "1", "yes")
