"""Progress reporting for build and SSL runs.

A run owns one ProgressTracker; the tracker writes every transition through a
ProgressSink. The database sink overwrites the website's ``build_progress`` or
``ssl_progress`` slot, which the UI polls.
"""
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session

from wpforge.core.logger import setup_logger
from wpforge.db.models.website import Website, WebsiteStatus
from wpforge.schemas.website import Progress

logger = setup_logger("progress")

BUILD_SLOT = "build_progress"
SSL_SLOT = "ssl_progress"


class ProgressSink:
    def report(self, progress: Progress) -> None:
        raise NotImplementedError

    def fail(self, progress: Progress, error_message: str) -> None:
        raise NotImplementedError


class WebsiteProgressSink(ProgressSink):
    """Writes progress onto a website row. Write errors are logged, never raised."""

    def __init__(self, session_factory: Callable[[], Session], website_id: str, slot: str = BUILD_SLOT):
        if slot not in (BUILD_SLOT, SSL_SLOT):
            raise ValueError(f"unknown progress slot: {slot}")
        self.session_factory = session_factory
        self.website_id = website_id
        self.slot = slot

    def _write(self, progress: Progress, **fields):
        db = self.session_factory()
        try:
            website = db.get(Website, self.website_id)
            if website is None:
                logger.error(f"[progress] website {self.website_id} vanished; dropping update")
                return
            setattr(website, self.slot, progress.model_dump())
            website.current_step = progress.step
            for k, v in fields.items():
                setattr(website, k, v)
            website.updated_at = datetime.now(timezone.utc)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"[progress] update failed for {self.website_id}: {e}")
        finally:
            db.close()

    def report(self, progress: Progress) -> None:
        self._write(progress)

    def fail(self, progress: Progress, error_message: str) -> None:
        self._write(progress, status=WebsiteStatus.ERROR.value, error_message=error_message)


class ProgressTracker:
    """Keeps a run's progress monotonic and remembers the step in flight."""

    def __init__(self, sink: ProgressSink, label: str = "Progress"):
        self.sink = sink
        self.label = label
        self.current = Progress()
        self.failed = False

    def advance(self, step: int, message: str, percent: int, completed: bool = False) -> Progress:
        percent = max(self.current.percent, min(100, int(percent)))
        self.current = Progress(step=step, message=message, percent=percent, completed=completed)
        logger.info(f"[{self.label}] {percent}% - {message}")
        self.sink.report(self.current)
        return self.current

    def fail(self, error: BaseException | str) -> Progress:
        message = str(error)
        # failing step and last percent are kept as-is
        self.current = Progress(
            step=self.current.step,
            message=f"Error: {message}",
            percent=self.current.percent,
            completed=False,
        )
        logger.error(f"[{self.label}] failed at step {self.current.step}: {message}")
        self.failed = True
        self.sink.fail(self.current, message)
        return self.current
