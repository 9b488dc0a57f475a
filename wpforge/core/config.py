# wpforge/core/config.py
import json
from typing import Annotated, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    # ---------- App ----------
    PROJECT_NAME: str = "wpforge"
    API_V1_PREFIX: str = "/api/v1"
    # comma-separated in .env, e.g. "https://a.com,https://b.com" or "*"
    CORS_ALLOW_ORIGINS: Annotated[List[str], NoDecode] = ["*"]

    # ---------- Database ----------
    database_url: str = Field(default="sqlite:///./wpforge.db", alias="DATABASE_URL")

    # ---------- Celery ----------
    celery_broker_url: str = Field(default="redis://127.0.0.1:6379/0", alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(default="redis://127.0.0.1:6379/1", alias="CELERY_RESULT_BACKEND")

    # ---------- Credential vault ----------
    encryption_key: str | None = Field(default=None, alias="ENCRYPTION_KEY")

    # ---------- SSH ----------
    ssh_connect_timeout: int = Field(default=30, alias="SSH_CONNECT_TIMEOUT")
    ssh_banner_timeout: int = Field(default=60, alias="SSH_BANNER_TIMEOUT")
    ssh_auth_timeout: int = Field(default=30, alias="SSH_AUTH_TIMEOUT")

    # ---------- WordPress ----------
    wp_cli_download_url: str = Field(
        default="https://raw.githubusercontent.com/wp-cli/builds/gh-pages/phar/wp-cli.phar",
        alias="WP_CLI_DOWNLOAD_URL",
    )
    wp_locale: str = Field(default="ja", alias="WP_LOCALE")
    wp_theme: str = Field(default="lightning", alias="WP_THEME")
    wp_plugins: Annotated[List[str], NoDecode] = Field(
        default=["vk-all-in-one-expansion-unit", "vk-blocks", "contact-form-7"],
        alias="WP_PLUGINS",
    )
    wp_search_max_depth: int = Field(default=6, alias="WP_SEARCH_MAX_DEPTH")

    # ---------- SSL ----------
    dns_max_retries: int = Field(default=10, alias="DNS_MAX_RETRIES")
    dns_retry_interval: float = Field(default=30.0, alias="DNS_RETRY_INTERVAL")
    apache_sites_dir: str = Field(default="/etc/apache2/sites-available", alias="APACHE_SITES_DIR")

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("CORS_ALLOW_ORIGINS", "wp_plugins", mode="before")
    @classmethod
    def parse_csv(cls, v):
        if v is None:
            return v
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("encryption_key")
    @classmethod
    def check_key_length(cls, v):
        if v is not None and len(v) < 32:
            raise ValueError("ENCRYPTION_KEY must be at least 32 characters long")
        return v


settings = Settings()
