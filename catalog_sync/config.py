# ----------------------------------------------------------------
# Import configuration variables to be used throughout the project
# ----------------------------------------------------------------
import os
import json as _json
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load .env (allow container env to override file values)
load_dotenv(override=True)


def _rstrip_slash(s: str) -> str:
    return (s or "").rstrip("/")


def _get_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on", "y"}


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw.strip() else default
    except ValueError:
        return default


def _get_json_map(name: str, default: dict | None = None) -> dict:
    raw = os.getenv(name, "")
    if not raw:
        return default or {}
    try:
        return _json.loads(raw)
    except Exception:
        return default or {}


# Local attribute slug -> attribute name used on the target store
DEFAULT_ATTRIBUTE_NAME_MAP = {
    "boja": "Boja",
    "materijal": "Materijal",
    "velicina": "Veličina",
    "brand": "Brend",
    "dezen-navlake-za-kofer": "Dezen navlake za kofer",
    "model": "Model",
    "pol": "Pol",
    "tezina_proizvoda": "Težina",
    "miris": "Miris",
    "zapremina_proizvoda": "Zapremina",
}


class Settings:
    # ── Target WooCommerce / WordPress ───────────────────────────────────────
    TARGET_URL: str = _rstrip_slash(os.getenv("TARGET_URL", ""))
    WC_CONSUMER_KEY: str = os.getenv("WC_CONSUMER_KEY", "")
    WC_CONSUMER_SECRET: str = os.getenv("WC_CONSUMER_SECRET", "")

    # WP auth (Application Password) for media
    WP_USERNAME: str = os.getenv("WP_USERNAME", "")
    WP_PASSWORD: str = os.getenv("WP_APP_PASSWORD", "")  # keep the name WP_PASSWORD in code

    VERIFY_SSL: bool = _get_bool("VERIFY_SSL", False)

    # ── Sync behaviour ───────────────────────────────────────────────────────
    EXCHANGE_RATE: float = _get_float("EXCHANGE_RATE", 58.5)
    # "complete" reports zero matched variations as a completed step, "error" fails the step
    ZERO_MATCH_POLICY: str = os.getenv("ZERO_MATCH_POLICY", "complete").strip().lower()
    ATTRIBUTE_NAME_MAP: dict = _get_json_map("ATTRIBUTE_NAME_MAP", DEFAULT_ATTRIBUTE_NAME_MAP)
    SYNC_CLAIM_TTL_SECONDS: int = int(_get_float("SYNC_CLAIM_TTL_SECONDS", 600))

    # ── Logging ──────────────────────────────────────────────────────────────
    ENABLE_LOGGING: bool = _get_bool("ENABLE_LOGGING", True)
    MAX_LOG_ENTRIES: int = int(_get_float("MAX_LOG_ENTRIES", 100))

    # ── Inbound trigger ──────────────────────────────────────────────────────
    SYNC_TOKEN_SECRET: str = os.getenv("SYNC_TOKEN_SECRET", "")

    # ── CORS ─────────────────────────────────────────────────────────────────
    # Comma-separated list in .env, e.g. "https://example.com, https://foo.bar"
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    # ── Paths ────────────────────────────────────────────────────────────────
    # data directory is mounted: ./data ↔ /code/data (see docker-compose)
    DATA_DIR: str = os.getenv("DATA_DIR", "./data")
    CATALOG_PATH: str = os.getenv("CATALOG_PATH", os.path.join(DATA_DIR, "catalog.json"))
    LOG_STORE_PATH: str = os.getenv("LOG_STORE_PATH", os.path.join(DATA_DIR, "sync_logs.json"))
    TRANSIENTS_PATH: str = os.getenv("TRANSIENTS_PATH", os.path.join(DATA_DIR, "transients.json"))
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")


settings = Settings()


@dataclass
class TargetConfig:
    """Connection details for the target store, handed to every component."""
    base_url: str
    consumer_key: str = ""
    consumer_secret: str = ""
    username: str = ""
    password: str = ""
    verify_ssl: bool = False
    exchange_rate: float = 58.5
    zero_match_policy: str = "complete"
    attribute_name_map: dict = field(default_factory=dict)

    @property
    def wc_api_root(self) -> str:
        return f"{_rstrip_slash(self.base_url)}/wp-json/wc/v3"

    @property
    def wp_media_url(self) -> str:
        return f"{_rstrip_slash(self.base_url)}/wp-json/wp/v2/media"

    @property
    def key_params(self) -> dict:
        return {"consumer_key": self.consumer_key, "consumer_secret": self.consumer_secret}

    @property
    def basic_auth(self) -> tuple[str, str]:
        return (self.username, self.password)

    @classmethod
    def from_settings(cls, s: Settings = settings) -> "TargetConfig":
        return cls(
            base_url=s.TARGET_URL,
            consumer_key=s.WC_CONSUMER_KEY,
            consumer_secret=s.WC_CONSUMER_SECRET,
            username=s.WP_USERNAME,
            password=s.WP_PASSWORD,
            verify_ssl=s.VERIFY_SSL,
            exchange_rate=s.EXCHANGE_RATE,
            zero_match_policy=s.ZERO_MATCH_POLICY,
            attribute_name_map=dict(s.ATTRIBUTE_NAME_MAP or {}),
        )
