from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # ---------- MySQL ----------
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_DATABASE: str = "groupchat"

    # full URL, takes precedence over the MySQL parts (sqlite in tests)
    DATABASE_URL: Optional[str] = None

    # ---------- CORS ----------
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_DATABASE}?charset=utf8mb4"
        )

    @property
    def CORS_ORIGINS_LIST(self) -> List[str]:
        return [orig.strip() for orig in self.CORS_ORIGINS.split(",") if orig.strip()]

    # ---------- JWT ----------
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # ---------- Server / static ----------
    SERVER_URL: str = "http://localhost:8000"
    STATIC_DIR: str = "static"

    # ---------- Groups ----------
    GROUP_MAX_MEMBERS: int = 256
    GROUP_IMAGE_SIZE: int = 400
    GROUP_IMAGE_QUALITY: int = 80

    # ---------- Uploads ----------
    MAX_UPLOAD_BYTES: int = 20 * 1024 * 1024
    UPLOAD_RETENTION_DAYS: int = 7

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
