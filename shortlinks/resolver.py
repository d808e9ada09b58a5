import enum
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from shortlinks import codes, crud, models
from shortlinks.errors import LinkNotFound, LinkUnavailable, TransientError

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    TRANSIENT_ERROR = "transient_error"


@dataclass(frozen=True)
class Resolution:
    outcome: Outcome
    short_code: str
    link: models.ShortLink | None = None

    @property
    def resolved(self) -> bool:
        return self.outcome is Outcome.RESOLVED


def resolve(db: Session, code: str) -> Resolution:
    """Look up ``code`` and count the visit.

    The click is recorded here, before any interstitial is shown, so a visitor
    who leaves a timer or ad page early still counts exactly once.
    """
    if not codes.is_valid_code(code):
        return Resolution(Outcome.NOT_FOUND, code)

    try:
        link = crud.get_link_by_code(db, code)
        if link is None:
            return Resolution(Outcome.NOT_FOUND, code)
        if not link.is_active:
            return Resolution(Outcome.UNAVAILABLE, code)
        link = crud.increment_clicks(db, link.id)
    except LinkNotFound:
        return Resolution(Outcome.NOT_FOUND, code)
    except LinkUnavailable:
        # status changed between lookup and increment
        return Resolution(Outcome.UNAVAILABLE, code)
    except TransientError:
        logger.warning("Resolution of %s failed on storage error", code)
        return Resolution(Outcome.TRANSIENT_ERROR, code)

    return Resolution(Outcome.RESOLVED, code, link)
