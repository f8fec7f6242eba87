"""
api.py — HTTP surface: manual sync trigger and on-demand contact lookup.
"""

from typing import Callable, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from config import Settings, load_settings
from contact_lookup import ContactRequestHandler
from database import CatalogStore
from exceptions import DetailFetchError, JobSyncError, SyncAlreadyRunning
from monitoring import get_logger
from scrapers.browser import BrowserSession
from scrapers.captcha import CHALLENGE_IMAGE_SELECTOR
from scrapers.jobsuche_api import JobsucheClient
from sync import SyncOrchestrator
from waits import Deadline

logger = get_logger("api")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _cors(response: Response) -> Response:
    response.headers.update(CORS_HEADERS)
    return response


def _error(status_code: int, message: str) -> JSONResponse:
    return _cors(JSONResponse(status_code=status_code, content={"success": False, "error": message}))


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[CatalogStore] = None,
    orchestrator: Optional[SyncOrchestrator] = None,
    contact_handler: Optional[ContactRequestHandler] = None,
    api_client: Optional[JobsucheClient] = None,
    session_factory: Optional[Callable[[Deadline], BrowserSession]] = None,
) -> FastAPI:
    settings = settings or load_settings()
    if store is None:
        store = CatalogStore(settings.db_path)
        store.init_db()
    api_client = api_client or JobsucheClient(settings.catalog_api)
    orchestrator = orchestrator or SyncOrchestrator.from_settings(settings, store, client=api_client)
    session_factory = session_factory or (lambda deadline: BrowserSession(settings.browser, deadline))
    contact_handler = contact_handler or ContactRequestHandler(settings, store, session_factory=session_factory)

    app = FastAPI(title="Job Catalog Sync")

    def require_operator(x_sync_token: Optional[str] = Header(default=None)):
        # No token configured means the trigger is open; validate_config warns about it
        if settings.sync_trigger_token and x_sync_token != settings.sync_trigger_token:
            raise HTTPException(status_code=401, detail="Invalid or missing sync token")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/sync", dependencies=[Depends(require_operator)])
    def trigger_sync():
        logger.info("Manual job sync triggered")
        try:
            result = orchestrator.run_manual()
        except SyncAlreadyRunning as e:
            logger.warning(f"Manual sync rejected: {e}")
            return JSONResponse(status_code=409, content={"success": False, "error": str(e)})
        if not result.success:
            return JSONResponse(status_code=500, content=result.to_dict())
        return result.to_dict()

    @app.options("/contact")
    def contact_preflight():
        return _cors(Response(status_code=204))

    @app.api_route("/contact", methods=["GET", "POST"])
    async def get_contact(request: Request, background_tasks: BackgroundTasks):
        refnr = request.query_params.get("refnr")
        if not refnr and request.method == "POST":
            try:
                body = await request.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                refnr = body.get("refnr")

        if not refnr:
            return _error(400, "refnr parameter required")

        try:
            contact = await run_in_threadpool(contact_handler.lookup, refnr)
        except JobSyncError as e:
            logger.error(f"Failed to get contact for {refnr}: {e}")
            return _error(500, str(e))
        except Exception as e:
            logger.exception(f"Unexpected failure getting contact for {refnr}")
            return _error(500, f"{type(e).__name__}: {e}")

        background_tasks.add_task(contact_handler.cache_contact, refnr, contact)
        return _cors(JSONResponse(content={"success": True, "kontakt": contact.to_dict()},
                                  background=background_tasks))

    @app.get("/captcha-image")
    def captcha_image(refnr: str = Query(...)):
        deadline = Deadline(settings.browser.navigation_timeout_seconds + 15)
        try:
            with session_factory(deadline) as session:
                session.open(refnr)
                if not session.has_element(CHALLENGE_IMAGE_SELECTOR):
                    return _error(404, "No challenge on this page")
                image = session.element_png(CHALLENGE_IMAGE_SELECTOR)
        except JobSyncError as e:
            logger.error(f"Challenge image fetch failed for {refnr}: {e}")
            return _error(500, "Failed to load challenge image")
        except Exception:
            logger.exception(f"Unexpected failure loading challenge image for {refnr}")
            return _error(500, "Failed to load challenge image")
        return _cors(Response(content=image, media_type="image/png"))

    @app.get("/job-details")
    def job_details(refnr: str = Query(...)):
        try:
            data = api_client.job_detail(refnr)
        except DetailFetchError as e:
            logger.error(f"Job details failed for {refnr}: {e}")
            return _error(502, "Failed to load job details")
        return _cors(JSONResponse(content=data))

    return app
