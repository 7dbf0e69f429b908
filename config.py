import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    app_name: str = os.getenv("APP_NAME", "Library Catalog")
    database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./library.db")
    database_echo: bool = os.getenv("DATABASE_ECHO", "False").lower() in ("true", "1", "yes")

    # Borrowing
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "14"))

    # Auth
    secret_key: str = os.getenv("SECRET_KEY", "change-me-in-production")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
    password_hash_iterations: int = int(os.getenv("PASSWORD_HASH_ITERATIONS", "240000"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
