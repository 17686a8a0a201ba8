'''
Holds all the configurations
'''
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """
    Manages application configuration using environment variables.
    """
    # Application Metadata
    APP_NAME: str = "DriveBook Backend"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Booking and payment reconciliation API for the DriveBook driving-lesson platform."
    TEST_MODE: bool = False

    # Database URL
    DATABASE_URL_PROD: str
    DATABASE_URL_TEST: str = "sqlite+aiosqlite:///:memory:"
    @property
    def database_url(self) -> str:
        """
        Dynamically returns the correct database URL based on the test_mode flag.
        """
        if self.TEST_MODE:
            return self.DATABASE_URL_TEST
        return self.DATABASE_URL_PROD

    # JWT Settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = []

    # Payment gateway
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    DEFAULT_CURRENCY: str = "GBP"

    # Booking settings
    SLOT_STEP_MINUTES: int = 30
    DEFAULT_LESSON_DURATION_MINUTES: int = 60
    AVAILABILITY_HORIZON_DAYS: int = 28

    class Config:
        env_file = ".env" # automatically loads the .env

# Create a single, importable instance of the settings
settings = Settings()
