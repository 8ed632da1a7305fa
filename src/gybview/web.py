"""HTTP API for browsing an exported mail archive.

Run with: gybview web
Or directly: python -m gybview.web
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
import uvicorn

from .accounts import AccountRegistry
from .config import ViewerConfig, load_config, setup_logging
from .enrich import MessageEnricher
from .errors import (
    AccountNotFound,
    FileUnavailable,
    InvalidInput,
    NoAccountsAvailable,
    RecordNotFound,
    StoreIntegrityViolation,
)
from .queries import MIN_SENDER_QUERY, MessageQueries
from .store import ArchiveSession

logger = logging.getLogger(__name__)


def error(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def create_app(config: ViewerConfig | None = None, session: ArchiveSession | None = None) -> FastAPI:
    """Build the app around one archive session, closed on shutdown."""
    config = config or load_config()
    session = session or ArchiveSession(config.accounts_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        session.close()

    app = FastAPI(title="GYB Archive Viewer", lifespan=lifespan)
    app.state.config = config
    app.state.session = session
    app.state.registry = registry = AccountRegistry(session)
    app.state.queries = queries = MessageQueries(session, registry)
    app.state.enricher = enricher = MessageEnricher(session, read_timeout=config.read_timeout)

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        return error("Invalid request parameters", 400, details=jsonable_errors(exc))

    @app.exception_handler(InvalidInput)
    async def on_invalid_input(request: Request, exc: InvalidInput):
        return error(str(exc), 400)

    @app.exception_handler(AccountNotFound)
    async def on_account_not_found(request: Request, exc: AccountNotFound):
        return error(str(exc), 404)

    @app.exception_handler(RecordNotFound)
    async def on_record_not_found(request: Request, exc: RecordNotFound):
        return error(str(exc), 404)

    @app.exception_handler(NoAccountsAvailable)
    async def on_no_accounts(request: Request, exc: NoAccountsAvailable):
        return error(str(exc), 503)

    @app.exception_handler(StoreIntegrityViolation)
    async def on_integrity_violation(request: Request, exc: StoreIntegrityViolation):
        logger.critical("Request %s aborted: %s", request.url.path, exc)
        return error("Store integrity violation", 500)

    @app.get("/api/accounts")
    def api_accounts():
        """Available accounts and the current one."""
        return registry.describe()

    @app.post("/api/accounts/select")
    async def api_select_account(request: Request):
        """Switch the current account."""
        try:
            body = await request.json()
        except ValueError:
            body = None
        account = body.get("accountName") if isinstance(body, dict) else None
        if not account or not isinstance(account, str):
            return error("Account name is required", 400)
        try:
            await run_in_threadpool(registry.select, account)
        except AccountNotFound:
            return error("Invalid account name", 400)
        return {"success": True, "currentAccount": account}

    @app.get("/api/labels")
    def api_labels():
        return {"labels": queries.list_labels()}

    @app.get("/api/emails")
    async def api_emails(
        label: str | None = None,
        page: int = 1,
        pageSize: int | None = None,
        sortField: str = "date",
        sortOrder: str = "desc",
    ):
        """One page of messages for a label, with parsed subject/from/to."""
        if not label:
            return error("Label parameter is required", 400)
        result = await run_in_threadpool(
            queries.list_by_label,
            label,
            page,
            pageSize if pageSize is not None else config.page_size,
            sortField,
            sortOrder,
        )
        enriched = await enricher.enrich_page(result.messages)
        return {
            "emails": [e.summary() for e in enriched],
            "total": result.total,
        }

    @app.get("/api/email/{uid}")
    async def api_email(uid: str):
        """Parsed message plus its original text, or a placeholder if the file is bad."""
        message = await run_in_threadpool(queries.get_by_uid, uid)
        if not message:
            return error("Email not found", 404)
        enriched = await enricher.enrich_async(message)
        body = {"email": enriched.detail(), "original": enriched.original}
        if not enriched.ok:
            body["error"] = enriched.error
        return body

    @app.get("/api/email/{uid}/download")
    def api_email_download(uid: str):
        """Raw .eml bytes as an attachment named after the UID."""
        message = queries.require_by_uid(uid)
        try:
            raw = enricher.read_raw(message)
        except FileUnavailable as e:
            logger.warning("Download of uid %s failed: %s", uid, e)
            raise RecordNotFound(f"Email file not found: {uid}") from e
        return Response(
            content=raw,
            media_type="message/rfc822",
            headers={"Content-Disposition": f'attachment; filename="{uid}.eml"'},
        )

    @app.get("/api/system-info")
    def api_system_info():
        return queries.system_info().to_dict()

    @app.get("/api/senders")
    def api_senders(query: str = ""):
        """Sender addresses containing `query` (case-sensitive, at least two characters)."""
        if len(query) < MIN_SENDER_QUERY:
            return {"senders": []}
        return {"senders": queries.search_senders(query)}

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
        for e in exc.errors()
    ]


def main(host: str | None = None, port: int | None = None, reload: bool = False, config: ViewerConfig | None = None):
    """Run the web server."""
    config = config or load_config()
    setup_logging(config.log_level)
    host = host or config.host
    port = port or config.port
    print(f"Serving {config.accounts_dir} at http://{host}:{port}")
    if reload:
        # Reload needs an import string; the factory re-reads config from env
        uvicorn.run("gybview.web:create_app", factory=True, host=host, port=port, log_level="warning", reload=True)
    else:
        uvicorn.run(create_app(config), host=host, port=port, log_level="warning")


if __name__ == "__main__":
    main()
