import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class StatusPageError(RuntimeError):
    error_code: str = "status_page_error"


class NotFoundError(StatusPageError):
    error_code = "not_found"


class ComponentNotFoundError(NotFoundError):
    error_code = "component_not_found"


class IncidentNotFoundError(NotFoundError):
    error_code = "incident_not_found"


class IncidentUpdateNotFoundError(NotFoundError):
    error_code = "incident_update_not_found"


class MaintenanceNotFoundError(NotFoundError):
    error_code = "maintenance_not_found"


class ChannelNotConfiguredError(NotFoundError):
    error_code = "channel_not_configured"


class ValidationFailedError(StatusPageError):
    error_code = "validation_failed"


class VersionCheckInProgressError(StatusPageError):
    error_code = "version_check_in_progress"


class PersistenceError(StatusPageError):
    error_code = "persistence_error"


def commit_or_raise(db: Session, *, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("persistence_failed action=%s", action)
        raise PersistenceError(f"Failed to {action.replace('_', ' ')}") from exc
