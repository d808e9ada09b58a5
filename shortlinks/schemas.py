from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from shortlinks.models import LinkStatus, RedirectType


class LinkBase(BaseModel):
    original_url: str = Field(min_length=1, max_length=2048)
    title: str | None = Field(default=None, max_length=100)

class LinkCreate(LinkBase):
    redirect_type: RedirectType = RedirectType.DIRECT
    code: str | None = None

class LinkUpdate(BaseModel):
    original_url: str | None = Field(default=None, min_length=1, max_length=2048)
    title: str | None = Field(default=None, max_length=100)

class StatusUpdate(BaseModel):
    status: LinkStatus

class LinkOut(BaseModel):
    id: str
    short_code: str
    original_url: str
    title: str | None
    redirect_type: RedirectType
    clicks: int
    status: LinkStatus
    owner: str | None
    created_at: datetime | None

    model_config = ConfigDict(from_attributes=True)

class CreatedLink(LinkOut):
    short_url: str

class PaginatedLinks(BaseModel):
    items: list[LinkOut]
    total: int
    skip: int
    limit: int

class ReportIn(BaseModel):
    reason: str = Field(min_length=1, max_length=500)

class Interstitial(BaseModel):
    short_code: str
    redirect_type: RedirectType
    state: str
    countdown: int | None = None
    grace_seconds: int | None = None
    destination: str

class Token(BaseModel):
    access_token: str
    token_type: str

class MessageOut(BaseModel):
    ok: bool
    detail: str
