import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def parse_domains(raw: Optional[str]) -> List[str]:
    """Split a comma separated domain list, dropping blanks."""
    if not raw:
        return []
    return [d.strip() for d in raw.split(",") if d.strip()]


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Application
    app_name: str = os.getenv("APP_NAME", "Lending Library API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    debug: bool = _env_flag("DEBUG")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS
    allowed_origin: str = os.getenv("ALLOWED_ORIGIN", "*")

    # Authentication
    allowed_domains: List[str] = field(default_factory=lambda: parse_domains(os.getenv("ALLOWED_DOMAINS", "")))
    # 401 keeps "domain not allowed" indistinguishable from a bad token; 403 exposes it
    domain_denied_status: int = int(os.getenv("DOMAIN_DENIED_STATUS", "401"))
    google_client_id: str = os.getenv("GOOGLE_CLIENT_ID", "")
    google_issuers: List[str] = field(
        default_factory=lambda: parse_domains(
            os.getenv("GOOGLE_ISSUERS", "https://accounts.google.com,accounts.google.com")
        )
    )
    google_certs_url: str = os.getenv("GOOGLE_CERTS_URL", "https://www.googleapis.com/oauth2/v3/certs")
    jwks_cache_ttl: int = int(os.getenv("JWKS_CACHE_TTL", "3600"))
    token_clock_skew: int = int(os.getenv("TOKEN_CLOCK_SKEW", "60"))

    # Row store
    row_store: str = os.getenv("ROW_STORE", "sheets")
    spreadsheet_id: Optional[str] = os.getenv("SPREADSHEET_ID")
    service_account_file: Optional[str] = os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE")
    service_account_json: Optional[str] = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON")
    sheets_base_url: str = os.getenv("SHEETS_BASE_URL", "https://sheets.googleapis.com/v4/spreadsheets")
    sheets_timeout: float = float(os.getenv("SHEETS_TIMEOUT", "10"))

    # Google Books
    google_books_api_key: Optional[str] = os.getenv("GOOGLE_BOOKS_API_KEY")
    google_books_timeout: float = float(os.getenv("GOOGLE_BOOKS_TIMEOUT", "10"))
    catalog_lang_restrict: str = os.getenv("CATALOG_LANG_RESTRICT", "ja")
    catalog_max_results: int = int(os.getenv("CATALOG_MAX_RESULTS", "10"))

    # Cover images
    image_storage: str = os.getenv("IMAGE_STORAGE", "local")
    image_base_url: str = os.getenv("IMAGE_BASE_URL", "/images")

    @property
    def effective_log_level(self) -> str:
        """DEBUG=true overrides LOG_LEVEL."""
        return "DEBUG" if self.debug else self.log_level.upper()


settings = Settings()
