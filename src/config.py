"""
Application configuration management.
"""
import logging
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv(override=False)


def _getenv(*names: str, default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty environment value among `names`."""
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return default


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path("./data")


@dataclass
class AppConfig:
    """Application configuration with environment overrides."""

    # Paths
    data_dir: Path = field(default_factory=_default_data_dir)

    # Environment
    app_env: str = field(default_factory=lambda: os.getenv("APP_ENV", "dev"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", ""))

    # Google OAuth (VITE_ names are accepted for parity with the web client env)
    google_client_id: str = field(
        default_factory=lambda: _getenv("GOOGLE_CLIENT_ID", "VITE_GOOGLE_CLIENT_ID", default="")
    )
    google_client_secret: str = field(
        default_factory=lambda: _getenv("GOOGLE_CLIENT_SECRET", "VITE_GOOGLE_CLIENT_SECRET", default="")
    )
    google_refresh_token: str = field(
        default_factory=lambda: _getenv("GOOGLE_REFRESH_TOKEN", "VITE_GOOGLE_REFRESH_TOKEN", default="")
    )
    google_token_url: str = field(
        default_factory=lambda: _getenv(
            "GOOGLE_TOKEN_URL", "VITE_GOOGLE_TOKEN_URL", default="https://oauth2.googleapis.com/token"
        )
    )
    sheets_base_url: str = "https://sheets.googleapis.com/v4/spreadsheets"

    # Spreadsheets
    default_spreadsheet_id: str = field(
        default_factory=lambda: _getenv(
            "GOOGLE_SHEETS_SPREADSHEET_ID", "VITE_GOOGLE_SHEETS_SPREADSHEET_ID", default=""
        )
    )
    sales_spreadsheet_id: str = field(
        default_factory=lambda: _getenv("SALES_SPREADSHEET_ID", "VITE_SALES_SPREADSHEET_ID", default="")
    )
    sessions_spreadsheet_id: str = field(
        default_factory=lambda: _getenv("SESSIONS_SPREADSHEET_ID", "VITE_SESSIONS_SPREADSHEET_ID", default="")
    )
    payroll_spreadsheet_id: str = field(
        default_factory=lambda: _getenv("PAYROLL_SPREADSHEET_ID", "VITE_PAYROLL_SPREADSHEET_ID", default="")
    )
    expirations_spreadsheet_id: str = field(
        default_factory=lambda: _getenv(
            "EXPIRATIONS_SPREADSHEET_ID", "VITE_EXPIRATIONS_SPREADSHEET_ID", default=""
        )
    )
    leads_spreadsheet_id: str = field(
        default_factory=lambda: _getenv("LEADS_SPREADSHEET_ID", "VITE_LEADS_SPREADSHEET_ID", default="")
    )
    recurring_spreadsheet_id: str = field(
        default_factory=lambda: _getenv("RECURRING_SPREADSHEET_ID", "VITE_RECURRING_SPREADSHEET_ID", default="")
    )

    # Request pacing
    rate_limiter: str = field(default_factory=lambda: os.getenv("SHEETS_RATE_LIMITER", "interval"))
    min_request_interval: float = field(
        default_factory=lambda: float(os.getenv("SHEETS_MIN_INTERVAL_SECONDS", "1.0"))
    )
    request_timeout: float = field(default_factory=lambda: float(os.getenv("SHEETS_TIMEOUT_SECONDS", "30")))
    token_expiry_buffer_seconds: int = 300

    # Cache settings
    cache_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("CACHE_TTL_SECONDS", "300")))
    use_snapshots: bool = field(
        default_factory=lambda: os.getenv("USE_SNAPSHOTS", "false").lower() in ("1", "true", "yes")
    )

    # Business logic defaults
    month_on_month_window: int = 24
    significance_threshold: float = 2.0
    strong_trend_threshold: float = 20.0
    moderate_trend_threshold: float = 5.0

    @property
    def snapshots_dir(self) -> Path:
        return self.data_dir / "snapshots"

    @property
    def is_prod(self) -> bool:
        return self.app_env.lower() == "prod"

    @property
    def has_google_credentials(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_refresh_token)

    def missing_google_settings(self) -> list:
        """Names of the OAuth settings that are not configured."""
        required = {
            "GOOGLE_CLIENT_ID": self.google_client_id,
            "GOOGLE_CLIENT_SECRET": self.google_client_secret,
            "GOOGLE_REFRESH_TOKEN": self.google_refresh_token,
        }
        return [name for name, value in required.items() if not value]

    def spreadsheet_id(self, key: str) -> str:
        """Resolve a spreadsheet key (sales, sessions, ...) to its ID."""
        specific = getattr(self, f"{key}_spreadsheet_id", "")
        return specific or self.default_spreadsheet_id


# Global config instance
config = AppConfig()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once; debug output only when asked for."""
    resolved = level or config.log_level or ("WARNING" if config.is_prod else "INFO")
    logging.basicConfig(
        level=getattr(logging, resolved.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@dataclass(frozen=True)
class SheetSource:
    """Where an entity lives: spreadsheet key, A1 range and render option."""
    entity: str
    spreadsheet_key: str
    range: str
    value_render_option: str = "UNFORMATTED_VALUE"
    label: str = ""


# Sheet sources per entity
SHEET_SOURCES = {
    "sales": SheetSource("sales", "sales", "Sales", "FORMATTED_VALUE", "sales"),
    "sessions": SheetSource("sessions", "sessions", "Sessions", "FORMATTED_VALUE", "sessions"),
    "new_clients": SheetSource("new_clients", "payroll", "New", "FORMATTED_VALUE", "new client"),
    "payroll": SheetSource("payroll", "payroll", "Payroll", "UNFORMATTED_VALUE", "payroll"),
    "expirations": SheetSource("expirations", "expirations", "Expirations!A:Z", "FORMATTED_VALUE", "expirations"),
    "leads": SheetSource("leads", "leads", "◉ Leads", "FORMATTED_VALUE", "leads"),
    "checkins": SheetSource("checkins", "payroll", "Checkins", "UNFORMATTED_VALUE", "checkins"),
    "recurring": SheetSource("recurring", "recurring", "Recurring", "UNFORMATTED_VALUE", "recurring sessions"),
    "teacher_recurring": SheetSource(
        "teacher_recurring", "recurring", "Teacher Recurring", "UNFORMATTED_VALUE", "teacher recurring sessions"
    ),
}

# Entities the summary views load; the recurring rollups only feed the sessions page
SUMMARY_ENTITIES = [entity for entity in SHEET_SOURCES if entity not in ("recurring", "teacher_recurring")]

# Required columns (hard fail if missing)
REQUIRED_COLUMNS = {
    "sales": [
        "member_id",
        "payment_date",
        "payment_value",
        "payment_vat",
        "net_revenue",
        "payment_transaction_id",
        "sale_item_id",
        "discount_amount",
    ],
    "sessions": [
        "session_id",
        "trainer_name",
        "location",
        "date",
        "capacity",
        "checked_in_count",
        "total_paid",
    ],
    "new_clients": [
        "member_id",
        "first_visit_date",
        "is_new",
        "conversion_status",
        "retention_status",
        "ltv",
    ],
    "payroll": [
        "teacher_name",
        "location",
        "month_year",
        "total_sessions",
        "total_customers",
        "total_paid",
    ],
    "expirations": [
        "member_id",
        "end_date",
        "status",
    ],
    "leads": [
        "id",
        "created_at",
        "source",
        "stage",
        "conversion_status",
    ],
    "checkins": [
        "member_id",
        "session_id",
        "date_ist",
        "checked_in",
        "is_late_cancelled",
    ],
    "recurring": [
        "cleaned_class",
        "location",
        "day_of_week",
        "time",
        "total_sessions",
        "total_checked_in",
        "total_capacity",
    ],
    "teacher_recurring": [
        "trainer_name",
        "cleaned_class",
        "location",
        "day_of_week",
        "time",
        "total_sessions",
        "total_checked_in",
        "total_capacity",
    ],
}

# Optional columns (soft warn if missing)
OPTIONAL_COLUMNS = {
    "sales": [
        "calculated_location",
        "membership_type",
        "cleaned_product",
        "cleaned_category",
        "mrp_pre_tax",
        "mrp_post_tax",
        "discount_percentage",
        "sold_by",
    ],
    "sessions": [
        "cleaned_class",
        "class_type",
        "late_cancelled_count",
        "booked_count",
    ],
    "new_clients": [
        "first_visit_location",
        "trainer_name",
        "first_purchase",
        "conversion_span",
    ],
    "leads": [
        "channel",
        "center",
        "ltv",
        "visits",
    ],
    "recurring": [
        "trainer_name",
        "revenue",
        "empty_sessions",
        "top_trainers",
    ],
}

# Date columns per entity (parsed on snapshot load)
DATE_COLUMNS = {
    "sales": ["payment_date"],
    "sessions": ["date"],
    "new_clients": ["first_visit_date", "first_purchase"],
    "payroll": ["month_start"],
    "expirations": ["end_date", "order_at"],
    "leads": [
        "created_at",
        "converted_to_customer_at",
        "follow_up_1_date",
        "follow_up_2_date",
        "follow_up_3_date",
        "follow_up_4_date",
    ],
    "checkins": ["date_ist", "order_at"],
    "recurring": ["date"],
    "teacher_recurring": ["date"],
}
