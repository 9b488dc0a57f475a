"""Website lifecycle: trigger guards and the background run bodies.

Triggers (``save_credentials``, ``start_*``) run inside the HTTP request and
only validate and flip status. ``run_*`` functions are the Celery task bodies;
each opens exactly one SSH session and writes progress back to the row.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from wpforge.core import vault
from wpforge.core.errors import (
    AlreadyInstalled,
    InvalidWebsiteState,
    MissingCredentials,
    VaultError,
    WebsiteNotFound,
    WPForgeError,
)
from wpforge.core.logger import log_json, setup_logger
from wpforge.db.models.website import BUILD_BLOCKED, Website, WebsiteStatus
from wpforge.db.session import SessionLocal
from wpforge.schemas.website import (
    BuildRequest,
    DetectionResult,
    Progress,
    SaveCredentialsRequest,
    SSLRequest,
    StatusResponse,
)
from wpforge.services.detection import WordPressDetector
from wpforge.services.path_resolver import PathResolver
from wpforge.services.progress import BUILD_SLOT, SSL_SLOT, ProgressTracker, WebsiteProgressSink
from wpforge.services.provision_service import BuildConfig, WordPressProvisioner
from wpforge.services.ssl_service import CertificateProvisioner, DNSPropagationChecker, SSLConfig, get_ssl_expiry
from wpforge.utils.ssh_utils import RemoteSession, SSHCredentials, verify_ssh

logger = setup_logger("website_service")

QUEUED = Progress(step=0, message="Queued", percent=0, completed=False)

# a pre-existing install found by detection only re-labels sites we have not built
DETECTION_ACTIVATES = (
    WebsiteStatus.UNCONFIGURED.value,
    WebsiteStatus.CREDENTIALS_SAVED.value,
    WebsiteStatus.ERROR.value,
)


def _now():
    return datetime.now(timezone.utc)


def get_website(db: Session, website_id: str) -> Website:
    website = db.get(Website, website_id)
    if website is None:
        raise WebsiteNotFound(f"Website {website_id} not found")
    return website


def list_websites(db: Session, user_id: Optional[str] = None) -> List[Website]:
    q = db.query(Website)
    if user_id:
        q = q.filter(Website.user_id == user_id)
    return q.order_by(Website.created_at.desc()).all()


def credentials_for(website: Website) -> SSHCredentials:
    if not website.has_credentials:
        raise MissingCredentials("SSH credentials have not been saved for this website.")
    creds = SSHCredentials(host=website.server_host, username=website.server_user, port=website.server_port or 22)
    if website.server_auth_method == "privateKey":
        creds.private_key = vault.decrypt(website.server_key_encrypted)
    else:
        creds.password = vault.decrypt(website.server_pass_encrypted)
    return creds


def _require_vault():
    if not vault.is_encryption_key_configured():
        raise VaultError("ENCRYPTION_KEY is not configured on the server.")


# ---------- triggers ----------

def save_credentials(db: Session, req: SaveCredentialsRequest,
                     verifier: Optional[Callable[[SSHCredentials], dict]] = None) -> Website:
    website = get_website(db, req.website_id)
    _require_vault()

    creds = SSHCredentials(
        host=req.server_host.strip(),
        username=req.server_user.strip(),
        port=req.server_port,
        password=req.server_pass if req.auth_method == "password" else None,
        private_key=req.server_key if req.auth_method == "privateKey" else None,
    )
    # raises a ConnectionError subtype with a user-facing message
    (verifier or verify_ssh)(creds)

    website.server_host = creds.host
    website.server_port = creds.port
    website.server_user = creds.username
    website.server_auth_method = req.auth_method
    website.server_provider = req.server_provider
    if req.auth_method == "privateKey":
        website.server_key_encrypted = vault.encrypt(req.server_key)
        website.server_pass_encrypted = None
    else:
        website.server_pass_encrypted = vault.encrypt(req.server_pass)
        website.server_key_encrypted = None
    if website.status in (WebsiteStatus.UNCONFIGURED.value, WebsiteStatus.ERROR.value):
        website.status = WebsiteStatus.CREDENTIALS_SAVED.value
        website.error_message = None
    website.updated_at = _now()
    db.commit()
    db.refresh(website)
    logger.info(f"Credentials saved for {website.domain} ({req.auth_method})")
    return website


def start_detection(db: Session, website_id: str) -> Website:
    website = get_website(db, website_id)
    if not website.has_credentials:
        raise MissingCredentials("Save the SSH host, user and a password or key before detection.")
    _require_vault()
    return website


def start_build(db: Session, req: BuildRequest) -> Website:
    website = get_website(db, req.website_id)
    cached = DetectionResult.model_validate(website.wp_detection_result or {})
    if cached.installed:
        version = f" (version {cached.wp_version})" if cached.wp_version else ""
        raise AlreadyInstalled(f"WordPress is already installed on {website.domain}{version}.")
    if website.status in BUILD_BLOCKED:
        raise InvalidWebsiteState(f"A build cannot start while the website is '{website.status}'.")
    if not website.has_credentials:
        raise MissingCredentials("SSH credentials have not been saved for this website.")
    _require_vault()

    website.status = WebsiteStatus.BUILDING.value
    website.build_progress = QUEUED.model_dump()
    website.current_step = 0
    website.error_message = None
    website.updated_at = _now()
    db.commit()
    db.refresh(website)
    return website


def start_ssl(db: Session, req: SSLRequest) -> Website:
    website = get_website(db, req.website_id)
    if website.status != WebsiteStatus.SSL_PENDING.value:
        raise InvalidWebsiteState(
            f"SSL can only be installed after the build finishes (current status: '{website.status}')."
        )
    if not website.has_credentials:
        raise MissingCredentials("SSH credentials have not been saved for this website.")
    _require_vault()

    website.status = WebsiteStatus.SSL_INSTALLING.value
    website.ssl_progress = QUEUED.model_dump()
    website.error_message = None
    website.updated_at = _now()
    db.commit()
    db.refresh(website)
    return website


def build_task_payload(req: BuildRequest) -> dict:
    """Build parameters as sent to the broker, with passwords sealed."""
    payload = req.model_dump(exclude={"website_id", "admin_password", "db_pass"})
    payload["admin_email"] = str(req.admin_email)
    payload["admin_password_sealed"] = vault.encrypt(req.admin_password)
    payload["db_pass_sealed"] = vault.encrypt(req.db_pass)
    return payload


def get_status(db: Session, website_id: str) -> StatusResponse:
    website = get_website(db, website_id)
    return StatusResponse(
        website_id=website.id,
        domain=website.domain,
        status=website.status,
        build_progress=Progress(**(website.build_progress or {})),
        ssl_progress=Progress(**(website.ssl_progress or {})),
        wp_detection_result=website.wp_detection_result,
        wp_path=website.wp_path,
        wp_version=website.wp_version,
        ssl_enabled=bool(website.ssl_enabled),
        ssl_expires_at=website.ssl_expires_at,
        error_message=website.error_message,
    )


# ---------- runs ----------

@dataclass
class _Snapshot:
    domain: str
    provider: str
    status: str
    detection: Optional[dict]
    wp_path: Optional[str]
    credentials: SSHCredentials


def _load(db_factory, website_id: str) -> _Snapshot:
    db = db_factory()
    try:
        website = get_website(db, website_id)
        return _Snapshot(
            domain=website.domain,
            provider=website.server_provider or "other",
            status=website.status,
            detection=website.wp_detection_result,
            wp_path=website.wp_path,
            credentials=credentials_for(website),
        )
    finally:
        db.close()


def _update(db_factory, website_id: str, **fields):
    db = db_factory()
    try:
        website = get_website(db, website_id)
        for k, v in fields.items():
            setattr(website, k, v)
        website.updated_at = _now()
        db.commit()
    finally:
        db.close()


def run_detection(website_id: str, db_factory=SessionLocal, connect=RemoteSession) -> DetectionResult:
    status = None
    try:
        snap = _load(db_factory, website_id)
        status = snap.status
        with connect(snap.credentials) as session:
            resolver = PathResolver(session, snap.credentials.username, snap.provider)
            result = WordPressDetector(session, resolver).detect(snap.domain)
    except WebsiteNotFound:
        raise
    except WPForgeError as e:
        logger.error(f"Detection failed for {website_id}: {e}")
        result = DetectionResult(error=str(e))

    fields = {"wp_detection_result": result.to_record()}
    if result.installed:
        fields.update(wp_path=result.path, wp_version=result.wp_version)
        if status in DETECTION_ACTIVATES:
            fields["status"] = WebsiteStatus.ACTIVE.value
    _update(db_factory, website_id, **fields)
    return result


def run_build(website_id: str, payload: dict, db_factory=SessionLocal, connect=RemoteSession) -> dict:
    tracker = ProgressTracker(WebsiteProgressSink(db_factory, website_id, BUILD_SLOT), label="Build")
    try:
        snap = _load(db_factory, website_id)
        creds = snap.credentials
        admin_password = vault.decrypt(payload["admin_password_sealed"])
        db_pass = vault.decrypt(payload["db_pass_sealed"])
        config = BuildConfig(
            domain=snap.domain,
            server_user=creds.username,
            site_title=payload["site_title"],
            admin_user=payload["admin_user"],
            admin_password=admin_password,
            admin_email=payload["admin_email"],
            db_name=payload["db_name"],
            db_user=payload["db_user"],
            db_pass=db_pass,
            db_host=payload.get("db_host") or "localhost",
            provider=snap.provider,
        )
        provisioner = WordPressProvisioner(
            lambda: connect(creds, secrets=(admin_password, db_pass)), tracker
        )
        detection = DetectionResult.model_validate(snap.detection) if snap.detection else None
        outcome = provisioner.run(config, detection=detection)
    except Exception as e:
        if not tracker.failed:
            tracker.fail(e)
        raise

    _update(
        db_factory, website_id,
        status=WebsiteStatus.SSL_PENDING.value,
        wp_path=outcome.wp_path,
        wp_version=outcome.wp_version,
        error_message=None,
    )
    log_json(logger, event="website_built", website_id=website_id, domain=snap.domain, wp_path=outcome.wp_path)
    return {"wp_path": outcome.wp_path, "site_url": outcome.site_url,
            "wp_version": outcome.wp_version, "failed_pages": outcome.failed_pages}


def run_ssl(website_id: str, email: str, db_factory=SessionLocal, connect=RemoteSession,
            dns_checker: Optional[DNSPropagationChecker] = None, expiry_checker=get_ssl_expiry) -> dict:
    tracker = ProgressTracker(WebsiteProgressSink(db_factory, website_id, SSL_SLOT), label="SSL")
    try:
        snap = _load(db_factory, website_id)
        creds = snap.credentials
        config = SSLConfig(
            domain=snap.domain,
            email=email,
            server_host=creds.host,
            server_user=creds.username,
            provider=snap.provider,
            webroot=snap.wp_path,
        )
        provisioner = CertificateProvisioner(
            lambda: connect(creds), tracker, dns_checker=dns_checker, expiry_checker=expiry_checker
        )
        outcome = provisioner.run(config)
    except Exception as e:
        if not tracker.failed:
            tracker.fail(e)
        raise

    _update(
        db_factory, website_id,
        status=WebsiteStatus.COMPLETED.value,
        ssl_enabled=True,
        ssl_expires_at=outcome.expires_at,
        error_message=None,
    )
    return {"method": outcome.method, "vhost": outcome.vhost_path,
            "renewal_enabled": outcome.renewal_enabled,
            "expires_at": outcome.expires_at.isoformat() if outcome.expires_at else None}
