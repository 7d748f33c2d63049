import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    environment: str = os.getenv("ENVIRONMENT", "development").lower()

    database_url: str = os.getenv(
        "DATABASE_URL",
        "sqlite+aiosqlite:///./records.db"
    )
    database_echo: bool = os.getenv("DATABASE_ECHO", "False").lower() == "true"

    # Read cache. Empty REDIS_URL keeps the cache in-process.
    redis_url: str = os.getenv("REDIS_URL", "")
    cache_ttl: int = int(os.getenv("CACHE_TTL", "600"))
    cache_namespace: str = os.getenv("CACHE_NAMESPACE", "records-api")

    # MusicBrainz metadata lookup
    mbid_base_url: str = os.getenv("MBID_BASE_URL", "https://musicbrainz.org")
    mbid_timeout: float = float(os.getenv("MBID_TIMEOUT", "10"))

    # JWT auth
    jwt_secret: str = os.getenv("JWT_SECRET", "")
    jwt_lifetime_seconds: int = int(os.getenv("JWT_LIFETIME_SECONDS", "3600"))

    def get_jwt_secret(self) -> str:
        if self.jwt_secret:
            return self.jwt_secret
        if self.environment in ("production", "staging"):
            raise RuntimeError("JWT_SECRET is not defined in environment variables")
        return "dev-secret-change-me"


settings = Settings()
