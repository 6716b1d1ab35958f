import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field

FIREBASE_JWKS_URL = "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "petsDB"

    jwt_secret: str = "dev-secret"
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None

    # "secret" (HS256 shared secret) or "firebase" (RS256 ID tokens checked against JWKS)
    auth_provider: str = "secret"
    firebase_project_id: Optional[str] = None
    jwks_url: str = FIREBASE_JWKS_URL

    stripe_secret_key: str = ""
    payment_currency: str = "usd"

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    default_page_limit: int = 6

    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "petsDB"),
            jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_audience=os.getenv("JWT_AUDIENCE") or None,
            auth_provider=os.getenv("AUTH_PROVIDER", "secret").lower(),
            firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
            jwks_url=os.getenv("JWKS_URL", FIREBASE_JWKS_URL),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            payment_currency=os.getenv("PAYMENT_CURRENCY", "usd"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            default_page_limit=_int_env("DEFAULT_PAGE_LIMIT", 6),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=_int_env("PORT", 8000),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
