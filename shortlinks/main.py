import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import OAuth2PasswordRequestForm

from shortlinks import auth, codes, crud, database, models, schemas
from shortlinks.errors import LinkError, LinkNotFound, LinkUnavailable, TransientError
from shortlinks.redirect_flow import FlowState, RedirectFlow
from shortlinks.resolver import Outcome, resolve

load_dotenv(Path(__file__).parent.parent / ".env")

ENVIRONMENT = os.getenv("ENVIRONMENT", "dev")

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger("shortlinks")

# --- DB tables ---
models.Base.metadata.create_all(bind=database.engine)

app = FastAPI(
    title="Short Links",
    description="Short codes with direct, timed and ad-gated redirects and safe click counting.",
    version="1.0.0",
)

# --- CORS (allow frontend dev servers, etc.) ---
origins = ["*"] if ENVIRONMENT == "dev" else [
    os.getenv("PUBLIC_BASE_URL", "http://localhost:8000"),
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(LinkError)
async def link_error_handler(request: Request, exc: LinkError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
    )

OUTCOME_ERRORS = {
    Outcome.NOT_FOUND: LinkNotFound,
    Outcome.UNAVAILABLE: LinkUnavailable,
    Outcome.TRANSIENT_ERROR: TransientError,
}

def public_base_url(request: Request) -> str:
    return os.getenv("PUBLIC_BASE_URL") or str(request.base_url).rstrip("/")

def scope_for(user: str) -> str | None:
    # None lifts the ownership check
    return None if auth.is_admin(user) else user

# Health check (useful for uptime monitors & load balancers)
@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok", "env": ENVIRONMENT}

# ---------- API ----------
@app.post("/login", response_model=schemas.Token)
def login(form_data: OAuth2PasswordRequestForm = Depends()):
    if not auth.authenticate_user(form_data.username, form_data.password):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    token = auth.create_access_token({"sub": form_data.username})
    return {"access_token": token, "token_type": "bearer"}

@app.post("/create", response_model=schemas.CreatedLink, status_code=201)
def create_link(
    link_in: schemas.LinkCreate,
    request: Request,
    db=Depends(database.get_db),
    user=Depends(auth.get_optional_user),
):
    link = crud.create_link(db, link_in, owner=user)
    logger.info("Created link %s -> %s (%s) by=%s",
                link.short_code, link.original_url, link.redirect_type.value, user or "anonymous")
    out = schemas.LinkOut.model_validate(link).model_dump()
    return {**out, "short_url": f"{public_base_url(request)}/{link.short_code}"}

@app.patch("/update/{link_id}", response_model=schemas.LinkOut)
def update_link(link_id: str, link_in: schemas.LinkUpdate, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    link = crud.update_link(db, link_id, link_in, owner=scope_for(user))
    logger.info("Updated link %s by=%s", link.short_code, user)
    return link

@app.delete("/delete/{link_id}", response_model=schemas.MessageOut)
def delete_link(link_id: str, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    link = crud.set_status(db, link_id, models.LinkStatus.DELETED, owner=scope_for(user))
    logger.info("Deleted link %s by=%s", link.short_code, user)
    return {"ok": True, "detail": f"Link '{link.short_code}' deleted"}

@app.patch("/status/{link_id}", response_model=schemas.LinkOut)
def set_status(link_id: str, status_in: schemas.StatusUpdate, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    if not auth.is_admin(user) and status_in.status is not models.LinkStatus.DELETED:
        raise HTTPException(status_code=403, detail="Only an administrator can suspend or reactivate links")
    link = crud.set_status(db, link_id, status_in.status, owner=scope_for(user))
    logger.info("Link %s is now %s by=%s", link.short_code, link.status.value, user)
    return link

@app.get("/links", response_model=schemas.PaginatedLinks)
def list_links(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    status: models.LinkStatus | None = None,
    db=Depends(database.get_db),
    user=Depends(auth.get_current_user),
):
    if auth.is_admin(user):
        owner = None
    else:
        owner, status = user, models.LinkStatus.ACTIVE
    items = crud.get_links(db, owner=owner, status=status, skip=skip, limit=limit)
    total = crud.count_links(db, owner=owner, status=status)
    return {"items": items, "total": total, "skip": skip, "limit": limit}

@app.post("/report/{code}", response_model=schemas.MessageOut, status_code=202)
def report_link(code: str, report_in: schemas.ReportIn, background_tasks: BackgroundTasks):
    if not codes.is_valid_code(code):
        raise LinkNotFound()
    background_tasks.add_task(crud.file_report, code, report_in.reason)
    return {"ok": True, "detail": "Report received"}

def visit(code: str, db):
    resolution = resolve(db, code)
    flow = RedirectFlow()
    flow.begin(resolution)
    if flow.state is FlowState.ERROR:
        raise OUTCOME_ERRORS[flow.error]()
    if flow.state is FlowState.DESTINATION:
        return RedirectResponse(url=flow.destination, status_code=307)
    # Timed and ad-gated visits are finished client-side from this state.
    return schemas.Interstitial(**flow.snapshot())

# Back-compat /r/{code}
@app.get("/r/{code}", include_in_schema=False)
def redirect_r(code: str, db=Depends(database.get_db)):
    return visit(code, db)

# Pretty redirect /{code}
@app.get("/{code}", include_in_schema=False)
def redirect_pretty(code: str, db=Depends(database.get_db)):
    if codes.is_reserved(code):
        raise LinkNotFound()
    return visit(code, db)
