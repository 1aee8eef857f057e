import os
import logging
from dataclasses import dataclass
from typing import Optional


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    return int(value)


@dataclass
class Settings:
    database_url: str = os.getenv("LIBRARY_DB", "sqlite:///./library.db")
    log_level: str = os.getenv("LIBRARY_LOG", "INFO")

    # Account recorded as approver on every new borrowing request
    admin_account_id: Optional[int] = _optional_int(os.getenv("LIBRARY_ADMIN_ID"))

    max_requests_per_month: int = int(os.getenv("LIBRARY_MAX_REQUESTS_PER_MONTH", "3"))
    max_books_per_request: int = int(os.getenv("LIBRARY_MAX_BOOKS_PER_REQUEST", "5"))
    loan_days: int = int(os.getenv("LIBRARY_LOAN_DAYS", "30"))

    default_page_size: int = int(os.getenv("LIBRARY_PAGE_SIZE", "10"))

    jwt_secret_key: str = os.getenv("LIBRARY_JWT_SECRET", "library-development-secret-change-me-in-production")
    jwt_algorithm: str = os.getenv("LIBRARY_JWT_ALGORITHM", "HS256")
    access_token_minutes: int = int(os.getenv("LIBRARY_ACCESS_TOKEN_MINUTES", "30"))
    refresh_token_days: int = int(os.getenv("LIBRARY_REFRESH_TOKEN_DAYS", "7"))


settings = Settings()


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    logging.basicConfig(level=level or settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    return logging.getLogger("library")
