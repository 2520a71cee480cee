from pydantic import BaseModel, Field, field_validator
from sqlalchemy.engine import URL
import logging
import os

def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")

class Settings(BaseModel):
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))
    log_level: str = Field(default=os.getenv("LOG_LEVEL", "INFO"), validate_default=True)
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")

    # engine choice: DATABASE_URL, then MYSQL_*, then SQLITE_PATH, else no history
    database_url: str | None = os.getenv("DATABASE_URL") or None
    mysql_host: str | None = os.getenv("MYSQL_HOST") or None
    mysql_port: int = int(os.getenv("MYSQL_PORT", "3306"))
    mysql_user: str = os.getenv("MYSQL_USER", "root")
    mysql_password: str = os.getenv("MYSQL_PASSWORD", "")
    mysql_db: str = os.getenv("MYSQL_DB", "tracking_app")
    sqlite_path: str | None = os.getenv("SQLITE_PATH") or None

    geoip_enabled: bool = _flag("GEOIP_ENABLED")
    geoip_url: str = os.getenv("GEOIP_URL", "http://ip-api.com/json/{ip}")
    geoip_fields: str = os.getenv(
        "GEOIP_FIELDS", "status,message,country,regionName,city,lat,lon,timezone,isp,query"
    )
    geoip_timeout: float = float(os.getenv("GEOIP_TIMEOUT", "3.0"))

    trust_proxy: bool = _flag("TRUST_PROXY")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        # unknown names fall back to INFO rather than breaking startup
        name = (v or "").strip().upper()
        return name if isinstance(logging.getLevelName(name), int) else "INFO"

    def resolved_database_url(self) -> URL | str | None:
        if self.database_url:
            return self.database_url
        if self.mysql_host:
            return URL.create(
                "mysql+pymysql",
                username=self.mysql_user,
                password=self.mysql_password or None,
                host=self.mysql_host,
                port=self.mysql_port,
                database=self.mysql_db,
            )
        if self.sqlite_path:
            return f"sqlite:///{self.sqlite_path}"
        return None

settings = Settings()
