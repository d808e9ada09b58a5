import logging
from contextlib import contextmanager
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from shortlinks import codes, database, models, schemas
from shortlinks.errors import (
    CodeExhausted,
    CodeTaken,
    InvalidCode,
    InvalidStatusTransition,
    InvalidUrl,
    LinkNotFound,
    LinkUnavailable,
    NotOwner,
    TransientError,
)

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5
MAX_URL_LENGTH = 2048
SCHEMES = ("http://", "https://")

def format_url(url: str) -> str:
    url = url.strip()
    if url.lower().startswith(SCHEMES):
        return url
    return f"http://{url}"


def _destination(url: str) -> str:
    """Normalized URL that fits the original_url column."""
    if not url.strip():
        raise InvalidUrl()
    url = format_url(url)
    if len(url) > MAX_URL_LENGTH:
        raise InvalidUrl()
    return url


@contextmanager
def _storage(db: Session, action: str):
    """Turn any storage failure into a TransientError, leaving the session usable."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Storage failure while %s", action)
        raise TransientError() from exc

def create_link(
    db: Session,
    link_in: schemas.LinkCreate,
    owner: str | None = None,
    generate: Callable[[], str] = codes.generate_code,
) -> models.ShortLink:
    custom = link_in.code
    if custom is not None:
        if not codes.is_valid_code(custom):
            raise InvalidCode()
        if codes.is_reserved(custom):
            raise CodeTaken()

    original_url = _destination(link_in.original_url)
    attempts = 1 if custom is not None else MAX_CODE_ATTEMPTS

    for attempt in range(1, attempts + 1):
        code = custom if custom is not None else generate()
        if custom is None and codes.is_reserved(code):
            continue
        link = models.ShortLink(
            short_code=code,
            original_url=original_url,
            title=link_in.title or None,
            redirect_type=link_in.redirect_type,
            clicks=0,
            status=models.LinkStatus.ACTIVE,
            owner=owner,
        )
        db.add(link)
        # The unique index on short_code is the insert-if-absent check.
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if custom is not None:
                raise CodeTaken() from None
            logger.debug("Short code collision on %s (attempt %d)", code, attempt)
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to store link %s", code)
            raise TransientError() from exc
        db.refresh(link)
        return link

    logger.warning("Gave up allocating a short code after %d attempts", attempts)
    raise CodeExhausted()

def get_link(db: Session, link_id: str) -> models.ShortLink | None:
    with _storage(db, "loading link"):
        return db.get(models.ShortLink, link_id)

def get_link_by_code(db: Session, code: str) -> models.ShortLink | None:
    with _storage(db, "looking up code"):
        return db.query(models.ShortLink).filter_by(short_code=code).first()

def _scoped(query, owner: str | None, status: models.LinkStatus | None):
    if owner is not None:
        query = query.filter(models.ShortLink.owner == owner)
    if status is not None:
        query = query.filter(models.ShortLink.status == status)
    return query

def get_links(
    db: Session,
    owner: str | None = None,
    status: models.LinkStatus | None = models.LinkStatus.ACTIVE,
    skip: int = 0,
    limit: int = 100,
) -> list[models.ShortLink]:
    with _storage(db, "listing links"):
        return (
            _scoped(db.query(models.ShortLink), owner, status)
            .order_by(models.ShortLink.created_at.desc(), models.ShortLink.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

def count_links(
    db: Session,
    owner: str | None = None,
    status: models.LinkStatus | None = models.LinkStatus.ACTIVE,
) -> int:
    with _storage(db, "counting links"):
        return _scoped(db.query(models.ShortLink), owner, status).count()

def increment_clicks(db: Session, link_id: str) -> models.ShortLink:
    """Add exactly one click in a single UPDATE; only active links count."""
    stmt = (
        update(models.ShortLink)
        .where(
            models.ShortLink.id == link_id,
            models.ShortLink.status == models.LinkStatus.ACTIVE,
        )
        .values(clicks=models.ShortLink.clicks + 1)
        .execution_options(synchronize_session=False)
    )
    with _storage(db, "incrementing clicks"):
        updated = db.execute(stmt).rowcount
        db.commit()
        link = db.get(models.ShortLink, link_id, populate_existing=True)
    if link is None:
        raise LinkNotFound()
    if updated == 0:
        raise LinkUnavailable()
    return link

def _owned_link(db: Session, link_id: str, owner: str | None) -> models.ShortLink:
    link = get_link(db, link_id)
    if link is None:
        raise LinkNotFound()
    if owner is not None and link.owner != owner:
        raise NotOwner()
    return link

def update_link(
    db: Session,
    link_id: str,
    link_in: schemas.LinkUpdate,
    owner: str | None = None,
) -> models.ShortLink:
    """Partial update of title/url. ``owner=None`` skips the ownership check (admin)."""
    link = _owned_link(db, link_id, owner)
    if not link.is_active:
        raise LinkUnavailable("Only active links can be edited")

    changes = link_in.model_dump(exclude_unset=True)
    if changes.get("original_url") is not None:
        link.original_url = _destination(changes["original_url"])
    if "title" in changes:
        link.title = changes["title"] or None

    with _storage(db, "updating link"):
        db.commit()
        db.refresh(link)
    return link

def set_status(
    db: Session,
    link_id: str,
    status: models.LinkStatus | str,
    owner: str | None = None,
) -> models.ShortLink:
    status = models.LinkStatus(status)
    link = _owned_link(db, link_id, owner)
    if link.status == status:
        return link
    if link.status == models.LinkStatus.DELETED:
        raise InvalidStatusTransition()

    # Conditional on the row not being deleted meanwhile; deleted is terminal.
    stmt = (
        update(models.ShortLink)
        .where(
            models.ShortLink.id == link_id,
            models.ShortLink.status != models.LinkStatus.DELETED,
        )
        .values(status=status)
        .execution_options(synchronize_session=False)
    )
    with _storage(db, "changing status"):
        updated = db.execute(stmt).rowcount
        db.commit()
        link = db.get(models.ShortLink, link_id, populate_existing=True)
    if updated == 0:
        raise InvalidStatusTransition()
    return link

def file_report(short_code: str, reason: str) -> None:
    """Record an abuse report. Runs detached from the request, so it never raises."""
    db = database.SessionLocal()
    try:
        db.add(models.Report(short_code=short_code, reason=reason))
        db.commit()
        logger.info("Report filed for %s", short_code)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to file report for %s", short_code)
    finally:
        db.close()
