"""
FastAPI Web Application - Operator API, Webhooks and Dashboard
==============================================================

ARCHITECTURAL DECISION:
- The app is built by create_app(context_factory); the context (stores,
  booking source, SMS provider) is created in the lifespan and shared via
  app.state, so tests can inject fakes
- Routes that touch SQLite, Postgres or TextMagic are plain `def` and run
  in the threadpool; the event loop never blocks on a send delay
- The scheduler starts with the app when SCHEDULER_ENABLED is true

Error mapping: bad input 400, unknown job or opt-out 404, job already
running 409, gateway rejection 400, gateway unavailable 503/504,
anything else 500.
"""

import hmac
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from ..application import (
    JOBS,
    AppContext,
    InvalidAnchorDateError,
    InvalidRecipientError,
    JobRunner,
    JobScheduler,
    UnknownJobError,
    handle_delivery_status,
    handle_inbound_sms,
    send_test_sms,
)
from ..application.jobs import DAILY_REVIEW_REQUEST
from ..domain import normalize_phone
from ..infrastructure.importer import ReviewLinkImportError
from ..infrastructure.persistence import SOURCE_MANUAL, JobAlreadyRunningError
from ..infrastructure.sms import SmsSendError
from .pages import render_dashboard

logger = logging.getLogger(__name__)


# ── Request models ─────────────────────────────────────────────────

class RunJobRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: Optional[str] = None
    dry_run: bool = Field(default=False, alias="dryRun")


class OptOutRequest(BaseModel):
    phone: str
    note: Optional[str] = None


class TestSmsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str
    city: Optional[str] = None
    name: Optional[str] = None
    dry_run: bool = Field(default=False, alias="dryRun")


class TemplateUpdate(BaseModel):
    text: str


# ── Helpers ────────────────────────────────────────────────────────

def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_runner(request: Request) -> JobRunner:
    return request.app.state.runner


def require_webhook_secret(request: Request) -> None:
    """Reject webhook calls without the shared secret, when one is configured."""
    expected = request.app.state.context.settings.web.webhook_secret
    if not expected:
        return
    supplied = request.headers.get("x-webhook-secret") or request.query_params.get("secret") or ""
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


async def _payload(request: Request) -> dict:
    """Webhook body as a dict; gateways post either JSON or a form."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        return {k: v for k, v in form.items()}
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON or form data")
    return data if isinstance(data, dict) else {}


def _redirect(message: str) -> RedirectResponse:
    return RedirectResponse(url=f"/?message={quote(message)}", status_code=303)


def _next_runs(request: Request) -> dict:
    scheduler: JobScheduler = request.app.state.scheduler
    return {
        name: when.isoformat() if when else None
        for name, when in scheduler.next_runs().items()
    }


def _summarize(outcome) -> str:
    s = outcome.stats
    mode = "dry run" if s.dry_run else "live"
    return (
        f"{outcome.job} ({mode}, {outcome.window.label}): fetched {s.fetched}, "
        f"sent {s.sent}, skipped {s.skipped}, failed {s.failed}"
    )


def _check_upload(file: UploadFile, content: bytes, max_bytes: int) -> None:
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only .csv files are accepted")
    if len(content) > max_bytes:
        raise HTTPException(status_code=413, detail=f"File exceeds {max_bytes // (1024 * 1024)} MB")
    if not content.strip():
        raise HTTPException(status_code=400, detail="File is empty")


# ── App factory ────────────────────────────────────────────────────

def create_app(context_factory: Callable[[], AppContext] = AppContext.create) -> FastAPI:
    """
    Build the FastAPI app.

    Usage:
        app = create_app()                       # real stores from env
        app = create_app(lambda: fake_context)   # tests
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context = context_factory()
        runner = JobRunner(context)
        scheduler = JobScheduler(runner, context.settings.scheduler)
        app.state.context = context
        app.state.runner = runner
        app.state.scheduler = scheduler

        if context.settings.scheduler.enabled:
            scheduler.start()
        else:
            logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

        logger.info("Pickup SMS ready")
        yield

        scheduler.shutdown()
        context.close()

    app = FastAPI(
        title="Pickup SMS",
        description="Review requests and locker reminders over SMS",
        lifespan=lifespan,
    )

    # ── Error mapping ──────────────────────────────────────────────

    @app.exception_handler(UnknownJobError)
    async def unknown_job(request: Request, exc: UnknownJobError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(InvalidAnchorDateError)
    @app.exception_handler(InvalidRecipientError)
    @app.exception_handler(ReviewLinkImportError)
    async def bad_input(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(JobAlreadyRunningError)
    async def job_running(request: Request, exc: JobAlreadyRunningError):
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(SmsSendError)
    async def sms_failed(request: Request, exc: SmsSendError):
        status = 400 if exc.is_validation_error else exc.code
        return JSONResponse(status_code=status, content={"error": exc.message, "code": exc.code})

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(exc)},
        )

    # ── Health ─────────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/api/db-test")
    def db_test(context: AppContext = Depends(get_context)):
        try:
            ok = context.source.ping()
        except Exception as e:
            logger.exception("Booking database check failed")
            return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
        return {"ok": ok}

    @app.get("/api/stats")
    def stats(request: Request, context: AppContext = Depends(get_context)):
        latest = {name: context.runs.latest(name) for name in JOBS}
        return {
            "dry_run": context.settings.sms.dry_run,
            "opt_outs": context.opt_outs.count(),
            "review_links": {
                "cities": context.links.city_count(),
                "links": context.links.link_count(),
            },
            "jobs": {name: s.to_dict() if s else None for name, s in latest.items()},
            "next_runs": _next_runs(request),
        }

    # ── Opt-outs ───────────────────────────────────────────────────

    @app.get("/api/opt-outs")
    def list_opt_outs(
        search: Optional[str] = None,
        limit: int = Query(100, ge=1, le=1000),
        context: AppContext = Depends(get_context),
    ):
        if search and search.strip():
            items = context.opt_outs.search(search.strip(), limit)
        else:
            items = context.opt_outs.list(limit)
        return {"items": [o.to_dict() for o in items], "total": context.opt_outs.count()}

    @app.post("/api/opt-outs", status_code=201)
    def add_opt_out(body: OptOutRequest, context: AppContext = Depends(get_context)):
        phone = normalize_phone(body.phone, context.settings.phone.default_region)
        if not phone:
            raise HTTPException(status_code=400, detail=f"Invalid phone number: {body.phone}")
        context.opt_outs.add(phone, source=SOURCE_MANUAL, note=body.note)
        logger.info(f"Manual opt-out added for {phone}")
        return {"phone_e164": phone, "opted_out": True}

    @app.delete("/api/opt-outs/{phone}")
    def remove_opt_out(phone: str, context: AppContext = Depends(get_context)):
        key = normalize_phone(phone, context.settings.phone.default_region) or phone.strip()
        if not context.opt_outs.remove(key):
            raise HTTPException(status_code=404, detail=f"No opt-out for {key}")
        logger.info(f"Manual opt-out removed for {key}")
        return {"phone_e164": key, "removed": True}

    # ── Review links ───────────────────────────────────────────────

    @app.post("/api/review-links/upload")
    async def upload_review_links(request: Request, file: UploadFile = File(...)):
        context = get_context(request)
        max_bytes = context.settings.storage.max_upload_bytes
        content = await file.read(max_bytes + 1)
        _check_upload(file, content, max_bytes)
        cities = await run_in_threadpool(
            context.links.upload, content, context.settings.storage.review_links_csv
        )
        return {"cities": cities, "links": context.links.link_count()}

    @app.post("/api/review-links/reload")
    def reload_review_links(context: AppContext = Depends(get_context)):
        cities = context.links.load_file(context.settings.storage.review_links_csv)
        return {"cities": cities, "links": context.links.link_count()}

    @app.get("/api/review-links")
    def review_link_cities(context: AppContext = Depends(get_context)):
        return {"cities": context.links.cities(), "fallback_city": context.links.fallback_city}

    # ── Templates ──────────────────────────────────────────────────

    @app.get("/api/templates/{job}")
    def get_template(job: str, runner: JobRunner = Depends(get_runner)):
        runner.job(job)
        return {"job": job, "text": runner.context.templates.get(job)}

    @app.put("/api/templates/{job}")
    def put_template(job: str, body: TemplateUpdate, runner: JobRunner = Depends(get_runner)):
        runner.job(job)
        try:
            runner.context.templates.set(job, body.text)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"job": job, "text": body.text}

    # ── Jobs ───────────────────────────────────────────────────────

    @app.post("/api/test-sms")
    def test_sms(body: TestSmsRequest, context: AppContext = Depends(get_context)):
        result = send_test_sms(
            context, body.phone, city=body.city, first_name=body.name, dry_run=body.dry_run
        )
        return result.to_dict()

    @app.post("/api/jobs/{job}/run")
    def run_job(
        job: str,
        body: Optional[RunJobRequest] = None,
        runner: JobRunner = Depends(get_runner),
    ):
        body = body or RunJobRequest()
        outcome = runner.run(job, anchor_date=body.date, dry_run=body.dry_run)
        return outcome.to_dict()

    @app.post("/api/run-job")
    def run_daily_job(body: Optional[RunJobRequest] = None, runner: JobRunner = Depends(get_runner)):
        body = body or RunJobRequest()
        outcome = runner.run(DAILY_REVIEW_REQUEST, anchor_date=body.date, dry_run=body.dry_run)
        return outcome.to_dict()

    @app.get("/api/jobs/{job}/preview")
    def preview_job(job: str, date: Optional[str] = None, runner: JobRunner = Depends(get_runner)):
        window, decisions = runner.preview(job, anchor_date=date)
        eligible = sum(1 for d in decisions if d.eligible)
        return {
            "job": job,
            "window": {
                "start": window.start.isoformat(),
                "end": window.end.isoformat(),
                "label": window.label,
            },
            "fetched": len(decisions),
            "eligible": eligible,
            "skipped": len(decisions) - eligible,
            "candidates": [d.to_dict() for d in decisions],
        }

    @app.get("/api/jobs/{job}/logs")
    def job_logs(
        job: str,
        limit: int = Query(100, ge=1, le=1000),
        runner: JobRunner = Depends(get_runner),
    ):
        runner.job(job)
        entries = runner.context.send_log.recent(job, limit)
        return {"job": job, "items": [e.to_dict() for e in entries]}

    @app.get("/api/jobs/{job}/stats")
    def job_stats(job: str, runner: JobRunner = Depends(get_runner)):
        runner.job(job)
        latest = runner.context.runs.latest(job)
        return {
            "job": job,
            "latest_run": latest.to_dict() if latest else None,
            "by_status": runner.context.send_log.status_counts(job),
        }

    # ── Webhooks ───────────────────────────────────────────────────

    @app.post("/webhook/inbound", dependencies=[Depends(require_webhook_secret)])
    async def inbound(request: Request):
        data = await _payload(request)
        text = data.get("text")
        sender = data.get("from") or data.get("sender")
        if not sender:
            raise HTTPException(status_code=400, detail="'from' is required")

        context = get_context(request)
        logger.info(f"Inbound SMS {data.get('messageId', '?')} from {sender}")
        result = await run_in_threadpool(
            handle_inbound_sms,
            context.opt_outs,
            text,
            str(sender),
            context.settings.phone.default_region,
        )
        return {"ok": True, **result.to_dict()}

    @app.post("/webhook/delivery", dependencies=[Depends(require_webhook_secret)])
    async def delivery(request: Request):
        data = await _payload(request)
        try:
            result = handle_delivery_status(data.get("messageId") or data.get("id"), data.get("status"))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"ok": True, **result}

    # ── Dashboard ──────────────────────────────────────────────────

    @app.get("/", response_class=HTMLResponse)
    def dashboard(request: Request, message: str = "", search: str = ""):
        context = get_context(request)
        if search.strip():
            opt_outs = context.opt_outs.search(search.strip(), 50)
        else:
            opt_outs = context.opt_outs.list(50)
        return render_dashboard(
            jobs={name: job.title for name, job in JOBS.items()},
            latest_runs={name: context.runs.latest(name) for name in JOBS},
            next_runs=_next_runs(request),
            recent_logs=context.send_log.recent(limit=25),
            opt_outs=opt_outs,
            opt_out_count=context.opt_outs.count(),
            link_cities=context.links.city_count(),
            link_count=context.links.link_count(),
            dry_run=context.settings.sms.dry_run,
            message=message,
            search=search,
        )

    @app.post("/dashboard/run")
    def dashboard_run(
        request: Request,
        job: str = Form(...),
        date: str = Form(""),
        dry_run: Optional[str] = Form(None),
    ):
        runner = get_runner(request)
        try:
            outcome = runner.run(job, anchor_date=date or None, dry_run=bool(dry_run))
        except (UnknownJobError, InvalidAnchorDateError, JobAlreadyRunningError) as e:
            return _redirect(str(e))
        except Exception as e:
            logger.exception(f"Dashboard run of {job} failed")
            return _redirect(f"Run failed: {str(e)[:120]}")
        return _redirect(_summarize(outcome))

    @app.post("/dashboard/opt-outs/add")
    def dashboard_add_opt_out(request: Request, phone: str = Form(...), note: str = Form("")):
        context = get_context(request)
        e164 = normalize_phone(phone, context.settings.phone.default_region)
        if not e164:
            return _redirect(f"Invalid phone number: {phone}")
        context.opt_outs.add(e164, source=SOURCE_MANUAL, note=note or None)
        return _redirect(f"Opted out {e164}")

    @app.post("/dashboard/opt-outs/remove")
    def dashboard_remove_opt_out(request: Request, phone: str = Form(...)):
        context = get_context(request)
        key = normalize_phone(phone, context.settings.phone.default_region) or phone.strip()
        if context.opt_outs.remove(key):
            return _redirect(f"Removed opt-out for {phone}")
        return _redirect(f"No opt-out found for {phone}")

    @app.post("/dashboard/review-links")
    async def dashboard_upload(request: Request, file: UploadFile = File(...)):
        context = get_context(request)
        max_bytes = context.settings.storage.max_upload_bytes
        content = await file.read(max_bytes + 1)
        try:
            _check_upload(file, content, max_bytes)
            cities = await run_in_threadpool(
                context.links.upload, content, context.settings.storage.review_links_csv
            )
        except HTTPException as e:
            return _redirect(str(e.detail))
        except ReviewLinkImportError as e:
            return _redirect(str(e))
        return _redirect(f"Loaded review links for {cities} cities")

    return app
