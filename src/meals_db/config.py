"""Configuration for the Meals DB reconciliation server.

Reads Meals DB, WordPress and encryption settings from CLI args,
environment variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    MEALSDB_DATABASE_URL: SQLAlchemy URL of the Meals DB database
    MEALSDB_HOST, MEALSDB_USER, MEALSDB_PASSWORD, MEALSDB_NAME: Connection
        parts used when MEALSDB_DATABASE_URL is unset (MySQL)
    WP_URL: WordPress site URL (required)
    WP_USERNAME: WordPress user owning the application password (required)
    WP_APP_PASSWORD: WordPress application password (required)
    WP_INSECURE: Skip SSL verification (optional, default: false)
    PLUGIN_AES_KEY: ``base64:``-prefixed 32-byte field encryption key (required)
    MEALSDB_DEBUG: Enable debug logging (optional, default: false)
    MEALSDB_MAX_PARALLEL_REQUESTS: Max concurrent tool calls (optional, default: 5)
    MEALSDB_BATCH_SIZE: Rows/users read per batch (optional, default: 500)
    MEALSDB_ACTOR_ID: Operator id recorded in the audit log (optional, default: 0)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from sqlalchemy.engine import URL

from .crypto import load_key

logger = logging.getLogger(__name__)


@dataclass
class Config:
    database_url: str
    wordpress_url: str
    wordpress_username: str
    wordpress_password: str
    aes_key: str
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = 5
    batch_size: int = 500
    request_timeout: int = 60
    connect_timeout: int = 10
    actor_id: int = 0
    case_insensitive: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the WordPress URL is malformed, credentials are
            empty, or the encryption key cannot be decoded.
    """
    config.wordpress_url = config.wordpress_url.strip()

    if not config.wordpress_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid WordPress URL '{config.wordpress_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.wordpress_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid WordPress URL '{config.wordpress_url}': URL must include a hostname"
        )

    config.wordpress_url = config.wordpress_url.removesuffix("/")

    if not config.database_url.strip():
        raise ValueError(
            "Meals DB database URL cannot be empty. Set MEALSDB_DATABASE_URL "
            "or MEALSDB_HOST/MEALSDB_USER/MEALSDB_PASSWORD/MEALSDB_NAME."
        )

    if not config.wordpress_username.strip():
        raise ValueError(
            "WordPress username cannot be empty. Set WP_USERNAME environment variable."
        )

    if not config.wordpress_password.strip():
        raise ValueError(
            "WordPress application password cannot be empty. Set WP_APP_PASSWORD environment variable."
        )

    # Raises ValueError with its own message when malformed
    load_key(config.aes_key)

    if config.actor_id < 0:
        raise ValueError(
            f"Invalid actor id {config.actor_id}: must be zero or positive"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _database_url_from_parts() -> str | None:
    """Assemble a MySQL URL from the MEALSDB_HOST/USER/PASSWORD/NAME parts."""
    host = os.getenv("MEALSDB_HOST")
    name = os.getenv("MEALSDB_NAME")
    if not host or not name:
        return None
    url = URL.create(
        "mysql+pymysql",
        username=os.getenv("MEALSDB_USER") or None,
        password=os.getenv("MEALSDB_PASSWORD") or None,
        host=host,
        database=name,
        query={"charset": "utf8mb4"},
    )
    return url.render_as_string(hide_password=False)


def resolve_database_url(
    database_url: str | None = None, yaml_fallbacks: dict | None = None
) -> str:
    """Find the Meals DB URL: CLI > MEALSDB_DATABASE_URL > parts > YAML.

    Used on its own by ``--install-schema``, which needs no WordPress
    credentials.

    Raises:
        ValueError: If no source provides a URL.
    """
    fb = yaml_fallbacks or {}
    url = (
        database_url
        or os.getenv("MEALSDB_DATABASE_URL")
        or _database_url_from_parts()
        or fb.get("database_url")
    )
    if not url:
        raise ValueError(
            "Meals DB connection not found. Set MEALSDB_DATABASE_URL (or "
            "MEALSDB_HOST, MEALSDB_USER, MEALSDB_PASSWORD, MEALSDB_NAME), "
            "pass --database-url, or add 'database.url' to config.yml."
        )
    return url.strip()


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, low: int, high: int) -> int | None:
    """Return an int env var bounded to [low, high], or None if unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    database_url: str | None = None,
    wordpress_url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    aes_key: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        database_url: Override Meals DB SQLAlchemy URL.
        wordpress_url: Override WordPress site URL.
        username: Override WordPress username.
        password: Override WordPress application password.
        aes_key: Override field encryption key (``base64:...``).
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config (database, WordPress credentials,
            encryption key) is missing after checking all sources.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error ---

    final_database_url = resolve_database_url(database_url, fb)

    wp_url = wordpress_url or os.getenv("WP_URL") or fb.get("wordpress_url")
    if not wp_url:
        raise ValueError(
            "WordPress URL not found. Set WP_URL environment variable, "
            "pass --wp-url CLI argument, or add 'wordpress.url' to config.yml."
        )

    wp_username = username or os.getenv("WP_USERNAME") or fb.get("username")
    if not wp_username:
        raise ValueError(
            "WordPress username not found. Set WP_USERNAME environment variable, "
            "pass --wp-username CLI argument, or add 'wordpress.username' to config.yml."
        )

    wp_password = (
        password or os.getenv("WP_APP_PASSWORD") or fb.get("app_password")
    )
    if not wp_password:
        raise ValueError(
            "WordPress application password not found. Set WP_APP_PASSWORD "
            "environment variable or add 'wordpress.app_password' to config.yml."
        )

    final_key = aes_key or os.getenv("PLUGIN_AES_KEY") or fb.get("aes_key")
    if not final_key:
        raise ValueError(
            "Encryption key not found. Set PLUGIN_AES_KEY environment variable "
            "(format: base64:<32 bytes>) or add 'encryption.key' to config.yml."
        )

    # --- Boolean fields: CLI > env > YAML > default ---

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("WP_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("MEALSDB_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    final_max_parallel = _get_int_env("MEALSDB_MAX_PARALLEL_REQUESTS", 1, 100)
    if final_max_parallel is None:
        final_max_parallel = int(fb.get("max_parallel_requests", 5))

    final_batch = _get_int_env("MEALSDB_BATCH_SIZE", 1, 5000)
    if final_batch is None:
        final_batch = int(fb.get("batch_size", 500))

    final_actor = _get_int_env("MEALSDB_ACTOR_ID", 0, 2**31 - 1)
    if final_actor is None:
        final_actor = int(fb.get("actor_id", 0))

    config = Config(
        database_url=final_database_url.strip(),
        wordpress_url=wp_url.strip(),
        wordpress_username=wp_username.strip(),
        wordpress_password=wp_password.strip(),
        aes_key=final_key.strip(),
        insecure=final_insecure,
        debug=final_debug,
        max_parallel_requests=final_max_parallel,
        batch_size=final_batch,
        request_timeout=int(fb.get("request_timeout", 60)),
        connect_timeout=int(fb.get("connect_timeout", 10)),
        actor_id=final_actor,
        case_insensitive=bool(fb.get("case_insensitive", False)),
    )

    validate_config(config)

    return config
