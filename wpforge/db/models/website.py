import enum
import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class WebsiteStatus(str, enum.Enum):
    UNCONFIGURED = "unconfigured"
    CREDENTIALS_SAVED = "credentials_saved"
    BUILDING = "building"
    SSL_PENDING = "ssl_pending"
    SSL_INSTALLING = "ssl_installing"
    COMPLETED = "completed"
    ACTIVE = "active"
    ERROR = "error"


BUILD_BLOCKED = frozenset({
    WebsiteStatus.COMPLETED.value,
    WebsiteStatus.ACTIVE.value,
    WebsiteStatus.SSL_PENDING.value,
    WebsiteStatus.BUILDING.value,
})


class Website(Base):
    __tablename__ = "websites"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True)
    domain = Column(String, index=True, nullable=False)

    server_host = Column(String)
    server_port = Column(Integer, default=22, nullable=False)
    server_user = Column(String)
    server_pass_encrypted = Column(Text)
    server_key_encrypted = Column(Text)
    server_auth_method = Column(String, default="password", nullable=False)
    server_provider = Column(String, default="other", nullable=False)

    status = Column(String, default=WebsiteStatus.UNCONFIGURED.value, nullable=False)
    current_step = Column(Integer, default=0, nullable=False)
    # JSON instead of JSONB so sqlite works in dev and tests; always reassigned, never mutated
    build_progress = Column(JSON)
    ssl_progress = Column(JSON)
    wp_detection_result = Column(JSON)

    wp_path = Column(String)
    wp_version = Column(String)
    ssl_enabled = Column(Boolean, default=False, nullable=False)
    ssl_expires_at = Column(DateTime(timezone=True))
    error_message = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now(), nullable=False)

    @property
    def has_credentials(self) -> bool:
        secret = self.server_key_encrypted if self.server_auth_method == "privateKey" else self.server_pass_encrypted
        return bool(self.server_host and self.server_user and secret)
