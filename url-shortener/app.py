from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import RedirectResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional
import uvicorn
from config import settings
from errors import DuplicateShortcode, ExhaustedCodespace, NotFound
from geo import GeoLocator
from registry import UrlStore, create_store
from schemas import CreateShortURLReq, CreateShortURLResp, StatsResp
from utils import valid_shortcode, valid_url, check_validity, iso_z
from middleware.custom_logger import StructuredAuditMiddleware, audit, build_remote_sink

store = create_store(settings)

@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.locator = GeoLocator(settings.GEOIP_DB_PATH)
    audit.remote = build_remote_sink()
    audit.info("service", "Service starting")
    try:
        yield
    finally:
        app.state.locator.close()
        if audit.remote is not None:
            audit.remote.close()
            audit.remote = None

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
app.add_middleware(StructuredAuditMiddleware)

def get_store() -> UrlStore:
    return store

def get_locator(request: Request) -> GeoLocator:
    return request.app.state.locator

def make_short_link(request: Request, shortcode: str) -> str:
    base = str(request.base_url)
    if not base.endswith("/"):
        base += "/"
    return base + shortcode

def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    return forwarded or request.headers.get("x-real-ip") or getattr(request.client, "host", None)

@app.post("/shorturls", response_model=CreateShortURLResp, status_code=201)
def create_short_url(payload: CreateShortURLReq, request: Request, store: UrlStore = Depends(get_store)):
    audit.info("handler", "URL shorten request received")
    if not valid_url(payload.url, settings.MAX_URL_LENGTH):
        audit.warn("handler", "Invalid URL")
        raise HTTPException(status_code=400, detail="invalid url")
    ok, validity = check_validity(payload.validity, settings.DEFAULT_VALIDITY_MIN, settings.MAX_VALIDITY_MIN)
    if not ok:
        audit.warn("handler", "Invalid validity")
        raise HTTPException(status_code=400, detail="invalid validity")

    user_code: Optional[str] = payload.shortcode.strip() if payload.shortcode else None
    if user_code and not valid_shortcode(user_code):
        audit.warn("handler", "Invalid shortcode")
        raise HTTPException(status_code=400, detail="invalid shortcode format")

    try:
        u = store.registry.create(payload.url, user_code or None, validity)
    except DuplicateShortcode:
        audit.event("shortcode_collision", shortcode=user_code)
        audit.warn("service", f"Shortcode collision: {user_code}")
        raise HTTPException(status_code=409, detail="shortcode collision")
    except ExhaustedCodespace as e:
        audit.event("short_autogen_failed", attempts=e.attempts)
        audit.error("service", "Shortcode generation exhausted")
        raise HTTPException(status_code=500, detail="failed to generate shortcode")

    audit.event("short_created", shortcode=u.shortcode, long_url=u.original_url, expiry=iso_z(u.expires_at))
    audit.info("service", f"URL shortened: {u.shortcode}")
    return CreateShortURLResp(shortLink=make_short_link(request, u.shortcode), expiry=iso_z(u.expires_at))

@app.get("/shorturls/{shortcode}", response_model=StatsResp)
def get_stats(shortcode: str, store: UrlStore = Depends(get_store)):
    audit.info("handler", f"Stats for: {shortcode}")
    try:
        stats = store.registry.stats_snapshot(shortcode)
    except NotFound:
        audit.warn("handler", f"Shortcode not found: {shortcode}")
        raise HTTPException(status_code=404, detail="shortcode not found")
    audit.event("stats_view", shortcode=shortcode, totalClicks=stats.total_clicks)
    audit.info("service", f"Stats retrieved: {shortcode}")
    return StatsResp.from_stats(stats)

@app.get("/{shortcode}")
def redirect_shortcode(
    shortcode: str,
    request: Request,
    store: UrlStore = Depends(get_store),
    geo: GeoLocator = Depends(get_locator),
):
    audit.info("handler", f"Redirect: {shortcode}")
    try:
        if not valid_shortcode(shortcode):
            raise NotFound(shortcode)
        u = store.registry.resolve(shortcode)
    except NotFound:
        audit.event("redirect_not_found", shortcode=shortcode)
        audit.warn("handler", f"Not found: {shortcode}")
        raise HTTPException(status_code=404, detail="This link has expired or does not exist")

    ip = client_ip(request)
    location = geo.locate(ip)
    click = store.clicks.record(
        shortcode,
        referrer=request.headers.get("referer") or request.headers.get("referrer"),
        user_agent=request.headers.get("user-agent", "")[:500],
        ip=ip,
        location=location,
    )
    audit.event("redirect_hit", shortcode=shortcode, referrer=click.referrer, location=click.location)
    audit.info("service", f"Redirected: {shortcode}")
    return RedirectResponse(url=u.original_url, status_code=302)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        audit.warn("route", f"404: {request.url.path}")
        detail = "Page not found"
    return JSONResponse(status_code=exc.status_code, content={"error": detail})

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    audit.warn("handler", "Malformed request body")
    errors = exc.errors()
    detail = errors[0]["msg"] if errors else "invalid request"
    return JSONResponse(status_code=400, content={"error": detail})

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    audit.error("middleware", "Unhandled error occurred")
    return JSONResponse(status_code=500, content={"error": "Something unexpected happened"})

if __name__ == "__main__":
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
