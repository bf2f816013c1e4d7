"""Application settings and validation."""

import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    ENV: str
    LOG_LEVEL: str
    SITE_URL: str
    BACKEND: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    SUPABASE_TIMEOUT_SECONDS: float
    CHAT_REPLY_DELAY_SECONDS: float
    CHAT_VIEW_TTL_SECONDS: int
    CHAT_MAX_VIEWS: int
    COOKIE_SECURE: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.SITE_URL = os.getenv("SITE_URL", "http://localhost:8000").rstrip("/")
        self.BACKEND = os.getenv("STUDYASSIST_BACKEND", "local").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", "")
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
        self.SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
        self.SUPABASE_TIMEOUT_SECONDS = float(os.getenv("SUPABASE_TIMEOUT_SECONDS", "10"))
        self.CHAT_REPLY_DELAY_SECONDS = float(os.getenv("CHAT_REPLY_DELAY_SECONDS", "1.0"))
        self.CHAT_VIEW_TTL_SECONDS = int(os.getenv("CHAT_VIEW_TTL_SECONDS", str(6 * 3600)))
        self.CHAT_MAX_VIEWS = int(os.getenv("CHAT_MAX_VIEWS", "1000"))
        # Browsers drop Secure cookies on plain http, so dev keeps them off.
        self.COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false" if self.ENV == "dev" else "true").lower() == "true"
        self._validate()

    def _validate(self):
        if self.BACKEND not in ("local", "supabase"):
            raise RuntimeError(f"STUDYASSIST_BACKEND must be 'local' or 'supabase', got {self.BACKEND!r}")
        if self.BACKEND == "supabase" and (not self.SUPABASE_URL or not self.SUPABASE_ANON_KEY):
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY are required for the supabase backend")
        if self.BACKEND == "local" and self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")


settings = Settings()
