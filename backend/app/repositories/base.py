import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError

from ..errors import StoreUnavailable, ValidationError
from ..realtime import ChangeFeed

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_clock_lock = threading.Lock()
_last_timestamp: Optional[datetime] = None


def utcnow() -> datetime:
    """Naive UTC timestamp, strictly increasing within the process.

    Rows are listed in creation order, so two inserts never share a created_at.
    """
    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


def new_id() -> str:
    return str(uuid.uuid4())


def require_name(name: Optional[str], what: str = "name") -> str:
    if name is None or not str(name).strip():
        raise ValidationError(f"{what} must not be empty")
    return str(name).strip()


def coerce(model_cls: Type[M], data) -> M:
    """Accept either a model instance or a plain mapping; bad shapes become ValidationError."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e


class BaseRepository:
    def __init__(self, session_factory, feed: ChangeFeed):
        self._session_factory = session_factory
        self.feed = feed

    @contextmanager
    def _transaction(self):
        """Yield (session, events); commit, then publish the collected change events.

        Nothing is published when the transaction fails.
        """
        events = []
        session = self._session_factory()
        try:
            yield session, events
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise ValidationError(f"Constraint violated: {e.orig}") from e
        except DBAPIError as e:
            session.rollback()
            logger.warning("store unavailable: %s", e)
            raise StoreUnavailable(f"Store unavailable: {e.orig}") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
        for event in events:
            self.feed.publish(event)
