"""
Environment-backed configuration for the compliance backend.
"""
import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Service settings read once from the environment."""

    def __init__(self):
        self.api_prefix = os.getenv("API_PREFIX", "/api")

        # MongoDB
        self.mongo_uri = os.getenv("MONGO_URI", "mongodb://localhost:27017/construction-compliance")
        self.mongo_db = os.getenv("MONGO_DB", "construction-compliance")
        self.mongo_max_retries = int(os.getenv("MONGO_MAX_RETRIES", "5"))
        self.mongo_retry_delay = int(os.getenv("MONGO_RETRY_DELAY", "3"))
        self.use_in_memory_store = _env_bool("USE_IN_MEMORY_STORE")

        # Tokens
        self.jwt_secret = os.getenv("JWT_SECRET", "secret")
        self.jwt_expire_days = int(os.getenv("JWT_EXPIRE_DAYS", "30"))
        self.bcrypt_rounds = int(os.getenv("BCRYPT_ROUNDS", "10"))

        # Uploads
        self.upload_dir = os.getenv("UPLOAD_DIR", "uploads")
        self.max_image_bytes = int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))

        self.max_projects_per_owner = int(os.getenv("MAX_PROJECTS_PER_OWNER", "50"))
        self.cities_file = os.getenv(
            "CITIES_FILE", os.path.join(os.path.dirname(__file__), "data", "cities.json")
        )
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        cors_origins_str = os.getenv("CORS_ORIGINS", "*")
        if cors_origins_str == "*":
            self.cors_origins: List[str] = ["*"]
        else:
            self.cors_origins = [origin.strip() for origin in cors_origins_str.split(",")]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
