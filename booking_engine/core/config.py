from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Advisor Booking Engine"

    # Server
    PORT: int = 8000
    ENVIRONMENT: str = "development"

    # Rule times and calendar dates are interpreted in this zone
    TIMEZONE: str = "Europe/Prague"

    # Supabase (empty -> in-process stores seeded from ADVISOR_CONFIG_PATH)
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # Shared secret of back-office callers (X-Secret-Token); empty disables them
    SECRET_KEY: str = ""

    # Google
    GOOGLE_CALENDAR_ID: str = "primary"
    GOOGLE_CREDENTIALS_FILE: str = "google_credentials.json"
    GOOGLE_CREDENTIALS_JSON: str = ""

    # Ledger
    LEDGER_TIMEOUT_SECONDS: float = 5.0
    LEDGER_MAX_RETRIES: int = 3
    LEDGER_RETRY_BACKOFF_SECONDS: float = 0.2

    # External calendar
    CALENDAR_TIMEOUT_SECONDS: float = 4.0

    MAX_DURATION_MINUTES: int = 480

    ADVISOR_CONFIG_PATH: str = "data/advisors.json"

    # Logging
    LOG_LEVEL: str = "INFO"
    ERROR_LOG_FILE: str = "logs/errors.log"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

settings = Settings()
