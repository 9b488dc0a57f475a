from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class Progress(BaseModel):
    step: int = 0
    message: str = ""
    percent: int = Field(default=0, ge=0, le=100)
    completed: bool = False


class DetectionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    installed: bool = False
    has_wp_config: bool = Field(default=False, alias="hasWpConfig")
    has_wp_cli: bool = Field(default=False, alias="hasWpCli")
    wp_version: Optional[str] = Field(default=None, alias="wpVersion")
    site_url: Optional[str] = Field(default=None, alias="siteUrl")
    admin_email: Optional[str] = Field(default=None, alias="adminEmail")
    themes: List[str] = Field(default_factory=list)
    plugins: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    # not part of the cached JSON shape; kept for the caller
    path: Optional[str] = Field(default=None, exclude=True)

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------- requests ----------

class SaveCredentialsRequest(BaseModel):
    website_id: str
    server_host: str = Field(..., examples=["sv1234.xserver.jp"])
    server_port: int = Field(22, ge=1, le=65535)
    server_user: str
    auth_method: Literal["password", "privateKey"] = "password"
    server_pass: Optional[str] = None
    server_key: Optional[str] = None
    server_provider: Literal["xserver", "conoha", "other"] = "other"

    @model_validator(mode="after")
    def check_secret(self):
        if self.auth_method == "password" and not self.server_pass:
            raise ValueError("server_pass is required for password authentication")
        if self.auth_method == "privateKey" and not self.server_key:
            raise ValueError("server_key is required for private key authentication")
        return self


class WebsiteRef(BaseModel):
    website_id: str


class BuildRequest(BaseModel):
    website_id: str
    site_title: str = Field(..., min_length=1)
    admin_user: str = Field(..., min_length=1)
    admin_password: str = Field(..., min_length=8)
    admin_email: EmailStr
    db_name: str
    db_user: str
    db_pass: str
    db_host: str = "localhost"


class SSLRequest(BaseModel):
    website_id: str
    email: EmailStr


# ---------- responses ----------

class Ack(BaseModel):
    success: bool = True
    website_id: str
    status: str
    task_id: Optional[str] = None
    message: str


class StatusResponse(BaseModel):
    website_id: str
    domain: str
    status: str
    build_progress: Progress
    ssl_progress: Progress
    wp_detection_result: Optional[dict] = None
    wp_path: Optional[str] = None
    wp_version: Optional[str] = None
    ssl_enabled: bool = False
    ssl_expires_at: Optional[datetime] = None
    error_message: Optional[str] = None


class WebsiteSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    domain: str
    status: str
    server_host: Optional[str] = None
    server_provider: Optional[str] = None
    ssl_enabled: bool = False
    updated_at: Optional[datetime] = None
