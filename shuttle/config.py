from pydantic_settings import BaseSettings
from typing import List, Optional
from decimal import Decimal

class Settings(BaseSettings):
    # Database
    DATABASE_URL: Optional[str] = None
    PGHOST: Optional[str] = None
    PGDATABASE: Optional[str] = None
    PGUSER: Optional[str] = None
    PGPASSWORD: Optional[str] = None
    PGSSLMODE: str = "require"
    SQLITE_PATH: str = "./shuttle.db"

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Application
    PROJECT_NAME: str = "University Shuttle System"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:3001"]

    # Trip planning
    PLANNER_MAX_RESULTS: int = 5
    PLANNER_MAX_TRANSFERS: int = 2
    PLANNER_MAX_EXPANSIONS: int = 5000
    TRANSFER_BUFFER_MINUTES: int = 2
    DEFAULT_HEADWAY_MINUTES: int = 15
    PEAK_BASE_CROWDING: float = 0.5
    OFF_PEAK_BASE_CROWDING: float = 0.2

    # Bookings
    BOOKING_REFERENCE_PREFIX: str = "SHT"
    BOOKING_REFERENCE_ATTEMPTS: int = 5
    COST_TOLERANCE: Decimal = Decimal("0.50")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.PGHOST and self.PGDATABASE and self.PGUSER:
            return f"postgresql://{self.PGUSER}:{self.PGPASSWORD}@{self.PGHOST}/{self.PGDATABASE}?sslmode={self.PGSSLMODE}"
        return f"sqlite:///{self.SQLITE_PATH}"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
