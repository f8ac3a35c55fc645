import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class Settings:

    mongodb_url: str
    mongodb_db: str
    redis_url: Optional[str]
    jwt_secret: str
    jwt_algorithm: str
    jwt_audience: Optional[str]
    public_base_url: str
    cache_dir: str
    message_fetch_limit: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        mongodb_url=os.getenv("MONGODB_URL", "mongodb://localhost:27017"),
        mongodb_db=os.getenv("MONGODB_DB", "gymchat"),
        redis_url=os.getenv("REDIS_URL") or None,
        jwt_secret=os.getenv("JWT_SECRET", "change-me"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_audience=os.getenv("JWT_AUDIENCE") or None,
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        cache_dir=os.path.expanduser(os.getenv("GYMCHAT_CACHE_DIR", "~/.gymchat")),
        message_fetch_limit=int(os.getenv("MESSAGE_FETCH_LIMIT", "100")),
    )
