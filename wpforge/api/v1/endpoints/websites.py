from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from wpforge.core.errors import (
    AlreadyInstalled,
    ConnectionError,
    InvalidWebsiteState,
    MissingCredentials,
    VaultError,
    WebsiteNotFound,
)
from wpforge.db.session import get_session
from wpforge.schemas.website import (
    Ack,
    BuildRequest,
    SaveCredentialsRequest,
    SSLRequest,
    StatusResponse,
    WebsiteRef,
    WebsiteSummary,
)
from wpforge.services import website_service
from wpforge.workers.tasks import build_wordpress_task, detect_wordpress_task, install_ssl_task

router = APIRouter(prefix="/websites", tags=["Websites"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, WebsiteNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, AlreadyInstalled):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, VaultError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


GUARD_ERRORS = (WebsiteNotFound, AlreadyInstalled, InvalidWebsiteState, MissingCredentials, VaultError)


@router.post("/save-credentials", response_model=Ack)
def save_credentials(payload: SaveCredentialsRequest, db: Session = Depends(get_session)):
    """Verify the SSH login, then store the encrypted credentials."""
    try:
        website = website_service.save_credentials(db, payload)
    except (*GUARD_ERRORS, ConnectionError) as e:
        raise _http_error(e)
    return Ack(website_id=website.id, status=website.status, message="SSH connection verified and credentials saved.")


@router.post("/detect-wordpress", response_model=Ack, status_code=status.HTTP_202_ACCEPTED)
def detect_wordpress(payload: WebsiteRef, db: Session = Depends(get_session)):
    try:
        website = website_service.start_detection(db, payload.website_id)
    except GUARD_ERRORS as e:
        raise _http_error(e)
    task = detect_wordpress_task.delay(website.id)
    return Ack(website_id=website.id, status=website.status, task_id=task.id, message="WordPress detection started.")


@router.post("/build", response_model=Ack, status_code=status.HTTP_202_ACCEPTED)
def build_website(payload: BuildRequest, db: Session = Depends(get_session)):
    """
    Starts the WordPress build on the remote account. Poll /websites/{id}/status for progress.
    """
    try:
        website = website_service.start_build(db, payload)
        task_payload = website_service.build_task_payload(payload)
    except GUARD_ERRORS as e:
        raise _http_error(e)
    task = build_wordpress_task.delay(website.id, task_payload)
    return Ack(website_id=website.id, status=website.status, task_id=task.id, message="WordPress build started.")


@router.post("/ssl", response_model=Ack, status_code=status.HTTP_202_ACCEPTED)
def install_ssl(payload: SSLRequest, db: Session = Depends(get_session)):
    try:
        website = website_service.start_ssl(db, payload)
    except GUARD_ERRORS as e:
        raise _http_error(e)
    task = install_ssl_task.delay(website.id, str(payload.email))
    return Ack(website_id=website.id, status=website.status, task_id=task.id, message="SSL installation started.")


@router.get("/{website_id}/status", response_model=StatusResponse)
def get_status(website_id: str, db: Session = Depends(get_session)):
    try:
        return website_service.get_status(db, website_id)
    except WebsiteNotFound as e:
        raise _http_error(e)


@router.get("", response_model=List[WebsiteSummary])
def list_websites(user_id: Optional[str] = None, db: Session = Depends(get_session)):
    return website_service.list_websites(db, user_id)
