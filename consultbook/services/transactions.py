import logging
from contextlib import contextmanager
from typing import Optional, Sequence, Type

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from consultbook.exceptions import ConcurrentUpdate, Internal, SchedulingError

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(
    db: Session,
    operation: str,
    integrity_error: Optional[Type[SchedulingError]] = None,
    integrity_message: str = "",
    integrity_match: Sequence[str] = (),
):
    """
    Run a multi-step write and commit it, or roll everything back.

    Domain errors raised inside propagate unchanged after the rollback.
    ``IntegrityError`` maps to ``integrity_error`` when given. With
    ``integrity_match`` it maps only when the driver message names one of
    those constraints or tables. A version mismatch maps to
    ``ConcurrentUpdate`` and any other store failure to ``Internal``.
    """
    try:
        yield db
        db.commit()
    except SchedulingError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        if integrity_error is not None and _matches(exc, integrity_match):
            logger.info("%s rejected by constraint: %s", operation, exc.orig)
            raise integrity_error(integrity_message) from exc
        logger.exception("%s failed on constraint", operation)
        raise Internal(f"{operation} failed") from exc
    except StaleDataError as exc:
        db.rollback()
        logger.info("%s lost a concurrent update: %s", operation, exc)
        raise ConcurrentUpdate("Appointment was modified concurrently; reload and retry") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("%s failed", operation)
        raise Internal(f"{operation} failed") from exc


def _matches(exc: IntegrityError, markers: Sequence[str]) -> bool:
    if not markers:
        return True
    message = str(exc.orig)
    return any(marker in message for marker in markers)
