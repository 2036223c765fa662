import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.app_name = "Finwrk"
        self.api_version = "1.0.0"
        self.environment = os.getenv("FINWRK_ENVIRONMENT", "development")
        self.secret_key = os.getenv("FINWRK_SECRET_KEY", "CHANGE_ME")
        self.SECRET_KEY = self.secret_key
        self.access_token_expire_minutes = int(os.getenv("FINWRK_ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
        self.ACCESS_TOKEN_EXPIRE_MINUTES = self.access_token_expire_minutes
        self.database_url = os.getenv("FINWRK_DATABASE_URL", "sqlite:///./finwrk.db")
        self.public_base_url = os.getenv("FINWRK_PUBLIC_BASE_URL", "http://localhost:5173").rstrip("/")
        self.log_level = os.getenv("FINWRK_LOG_LEVEL", "INFO").upper()

        # Background jobs
        self.enable_jobs = _env_bool("FINWRK_ENABLE_JOBS", True)
        self.recurring_interval_seconds = int(os.getenv("FINWRK_RECURRING_INTERVAL_SECONDS", "86400"))
        self.reminder_poll_seconds = int(os.getenv("FINWRK_REMINDER_POLL_SECONDS", "60"))
        self.reminder_lead_days = int(os.getenv("FINWRK_REMINDER_LEAD_DAYS", "3"))
        self.reminder_max_attempts = int(os.getenv("FINWRK_REMINDER_MAX_ATTEMPTS", "3"))
        self.reminder_backoff_seconds = int(os.getenv("FINWRK_REMINDER_BACKOFF_SECONDS", "2"))
        self.reminder_claim_timeout_seconds = int(os.getenv("FINWRK_REMINDER_CLAIM_TIMEOUT_SECONDS", "300"))
        self.reminder_batch_size = int(os.getenv("FINWRK_REMINDER_BATCH_SIZE", "100"))

        # Notifications
        self.toast_ttl_seconds = int(os.getenv("FINWRK_TOAST_TTL_SECONDS", "300"))
        self.notification_dedup_seconds = int(os.getenv("FINWRK_NOTIFICATION_DEDUP_SECONDS", "300"))

        # Recurring invoices
        self.default_due_days = int(os.getenv("FINWRK_DEFAULT_DUE_DAYS", "30"))


_settings_instance = None


def get_settings():
    """Return a singleton Settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
