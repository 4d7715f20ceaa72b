import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Trending never shows more than this many entries
MAX_TRENDING = 10


class Settings(BaseModel):
    """Credentials, store addressing and tunables for the pipeline."""

    # --- Catalog (TMDB) ---
    tmdb_access_token: str = ""
    tmdb_api_key: str = ""
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    tmdb_image_base_url: str = "https://image.tmdb.org/t/p/w500"

    # --- Record store (Appwrite) ---
    appwrite_endpoint: str = "https://cloud.appwrite.io/v1"
    appwrite_project_id: str = ""
    appwrite_api_key: str = ""
    appwrite_database_id: str = ""
    appwrite_collection_id: str = ""

    # --- Tunables ---
    debounce_ms: int = Field(600, ge=0)
    trending_limit: int = Field(MAX_TRENDING, ge=1, le=MAX_TRENDING)
    http_timeout: float = Field(10.0, gt=0)
    http_retries: int = Field(3, ge=0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path=None) -> "Settings":
        # Load environment variables from .env file
        load_dotenv(dotenv_path)
        env = {
            "tmdb_access_token": os.getenv("TMDB_READ_ACCESS_TOKEN"),
            "tmdb_api_key": os.getenv("TMDB_API_KEY"),
            "tmdb_base_url": os.getenv("TMDB_BASE_URL"),
            "tmdb_image_base_url": os.getenv("TMDB_IMAGE_BASE_URL"),
            "appwrite_endpoint": os.getenv("APPWRITE_ENDPOINT"),
            "appwrite_project_id": os.getenv("APPWRITE_PROJECT_ID"),
            "appwrite_api_key": os.getenv("APPWRITE_API_KEY"),
            "appwrite_database_id": os.getenv("APPWRITE_DATABASE_ID"),
            "appwrite_collection_id": os.getenv("APPWRITE_COLLECTION_ID"),
            "debounce_ms": os.getenv("SEARCH_DEBOUNCE_MS"),
            "trending_limit": os.getenv("TRENDING_LIMIT"),
            "http_timeout": os.getenv("HTTP_TIMEOUT"),
            "http_retries": os.getenv("HTTP_RETRIES"),
            "log_level": os.getenv("LOG_LEVEL"),
        }
        # Unset variables fall back to the field defaults
        return cls(**{key: value for key, value in env.items() if value not in (None, "")})

    @property
    def appwrite_configured(self) -> bool:
        return all(
            (
                self.appwrite_endpoint,
                self.appwrite_project_id,
                self.appwrite_database_id,
                self.appwrite_collection_id,
            )
        )

    @property
    def catalog_configured(self) -> bool:
        return bool(self.tmdb_access_token or self.tmdb_api_key)
