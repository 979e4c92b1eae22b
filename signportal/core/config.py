# signportal/core/config.py

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the application
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "development"
    allowed_cors_urls: str = "*"

    log_level: str = "INFO"
    log_file: Optional[str] = None

    database_url: str = "sqlite:///./signportal.db"
    db_host: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    db_database: Optional[str] = None
    db_port: int = 3306
    auto_create_tables: bool = True

    # DocuSeal integration
    docuseal_url: str = "https://api.docuseal.com"
    docuseal_api_key: str = ""
    docuseal_timeout: int = 60
    docuseal_webhook_secret: Optional[str] = None
    docuseal_webhook_header: str = "X-Docuseal-Secret"

    # Identity used for the final signing party of every submission
    admin_email: str = ""
    admin_name: str = "Administrator"

    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    auth_audience: Optional[str] = None
    auth_issuer: Optional[str] = None
    access_token_expire_minutes: int = 60

    @property
    def db_url(self) -> str:
        """
        Sync database URL
        """
        if self.db_host:
            return f"mysql+pymysql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_database}"
        return self.database_url


settings = Settings()
