from celery import Celery
from wpforge.core.config import settings
from wpforge.core.logger import setup_logger
from wpforge.services import website_service

logger = setup_logger("tasks")

celery_app = Celery(
    "wpforge",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # a provisioning run is never safe to replay after a worker crash
    task_acks_late=False,
    worker_prefetch_multiplier=1,
)


@celery_app.task(name="detect_wordpress_task")
def detect_wordpress_task(website_id: str):
    result = website_service.run_detection(website_id)
    return result.to_record()


@celery_app.task(name="build_wordpress_task")
def build_wordpress_task(website_id: str, payload: dict):
    try:
        return website_service.run_build(website_id, payload)
    except Exception as e:
        logger.error(f"[build {website_id}] {type(e).__name__}: {e}")
        raise


@celery_app.task(name="install_ssl_task")
def install_ssl_task(website_id: str, email: str):
    try:
        return website_service.run_ssl(website_id, email)
    except Exception as e:
        logger.error(f"[ssl {website_id}] {type(e).__name__}: {e}")
        raise
