import enum
import uuid
from datetime import datetime, timezone

from shortlinks.database import Base
from sqlalchemy import Column, DateTime, Enum, Integer, String, func


class RedirectType(str, enum.Enum):
    DIRECT = "direct"
    TIMER = "timer"
    AD = "ad"


class LinkStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


def _values(enum_cls):
    return [member.value for member in enum_cls]


def _now():
    return datetime.now(timezone.utc)


class ShortLink(Base):
    __tablename__ = "short_links"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Unique over every row ever written; deleted rows are kept so codes are never reissued.
    short_code = Column(String(50), unique=True, index=True, nullable=False)
    original_url = Column(String(2048), nullable=False)
    title = Column(String(100), nullable=True)
    redirect_type = Column(
        Enum(RedirectType, native_enum=False, length=16, values_callable=_values),
        nullable=False,
        default=RedirectType.DIRECT,
    )
    clicks = Column(Integer, nullable=False, default=0)
    status = Column(
        Enum(LinkStatus, native_enum=False, length=16, values_callable=_values),
        nullable=False,
        default=LinkStatus.ACTIVE,
        index=True,
    )
    owner = Column(String(255), nullable=True, index=True)
    # Set in Python for sub-second ordering; SQLite now() only has whole seconds.
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now())

    @property
    def is_active(self) -> bool:
        return self.status == LinkStatus.ACTIVE


class Report(Base):
    __tablename__ = "link_reports"

    id = Column(Integer, primary_key=True, index=True)
    short_code = Column(String(50), index=True, nullable=False)
    reason = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
