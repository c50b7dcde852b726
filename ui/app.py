from __future__ import annotations

import logging
import os
import secrets
from typing import Any, Iterator

from fastapi import Body, Depends, FastAPI, HTTPException, status
from fastapi.responses import FileResponse, HTMLResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from unmatch import (
    APP_VERSION,
    LocalStore,
    configure_logging,
    db_path,
    default_clock,
    delete_all_data,
    gather_snapshot,
    import_data,
    load_settings,
    progress_summary,
    validate_import_data,
    workspace_root,
    write_envelope_to_file,
    write_snapshot_to_file,
)
from unmatch.errors import EnvelopeError, RestoreError, UnmatchError
from unmatch.workspace import BACKUP_FILENAME

logger = logging.getLogger("unmatch.ui")

configure_logging(load_settings().log_level)


# ── HTML helpers ──────────────────────────────────────────────

def _escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


# ── Auth & dependencies ───────────────────────────────────────

app = FastAPI(title="Unmatch UI", version=APP_VERSION)

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("UNMATCH_USERNAME", "")
    expected_password = os.environ.get("UNMATCH_PASSWORD", "")

    if not expected_username or not expected_password:
        return "guest"

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


def get_store() -> Iterator[LocalStore]:
    store = LocalStore(db_path(workspace_root()))
    try:
        yield store
    finally:
        store.close()


# ── Endpoints ─────────────────────────────────────────────────

@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


@app.get("/", response_class=HTMLResponse)
def index(store: LocalStore = Depends(get_store), username: str = Depends(get_current_user)) -> HTMLResponse:
    summary = progress_summary(store, default_clock())
    rows = "".join(
        f"<tr><td>{_escape(str(k))}</td><td>{_escape(str(v))}</td></tr>"
        for k, v in summary.items()
    )
    html = f"""<!doctype html>
<html><head><meta charset="utf-8"><title>Unmatch</title></head>
<body>
<h1>Unmatch</h1>
<table>{rows}</table>
<p><a href="/api/export/download">Download backup</a></p>
</body></html>"""
    return HTMLResponse(html)


@app.get("/api/progress")
def api_progress(store: LocalStore = Depends(get_store), username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Streak, rank and totals for today."""
    return progress_summary(store, default_clock())


@app.post("/api/export")
def api_export(store: LocalStore = Depends(get_store), username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Write the backup file to the cache directory."""
    try:
        envelope = gather_snapshot(store, default_clock())
        path = write_envelope_to_file(envelope)
    except UnmatchError as e:
        logger.error("Export failed: %s", e)
        raise HTTPException(status_code=500, detail="Could not export data. Please try again.")
    return {"ok": True, "path": str(path), "counts": envelope.counts().to_dict()}


@app.get("/api/export/download")
def api_export_download(store: LocalStore = Depends(get_store), username: str = Depends(get_current_user)) -> FileResponse:
    """Fresh backup file as a JSON download."""
    try:
        path = write_snapshot_to_file(store, clock=default_clock())
    except UnmatchError as e:
        logger.error("Export failed: %s", e)
        raise HTTPException(status_code=500, detail="Could not export data. Please try again.")
    return FileResponse(str(path), media_type="application/json", filename=BACKUP_FILENAME)


@app.post("/api/import/validate")
def api_import_validate(payload: Any = Body(...), username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Counts to confirm before committing; nothing is written."""
    try:
        counts = validate_import_data(payload)
    except EnvelopeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "counts": counts.to_dict(), "summary": counts.describe()}


@app.post("/api/import/confirm")
def api_import_confirm(
    payload: Any = Body(...),
    store: LocalStore = Depends(get_store),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Replace all local data with the envelope."""
    try:
        counts = import_data(store, payload)
    except EnvelopeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RestoreError as e:
        code = 400 if e.kind == RestoreError.STRUCTURAL else 500
        raise HTTPException(status_code=code, detail=str(e))
    return {"ok": True, "counts": counts.to_dict()}


@app.post("/api/data/delete")
def api_delete_all(store: LocalStore = Depends(get_store), username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Remove all local data."""
    try:
        delete_all_data(store)
    except UnmatchError as e:
        logger.error("Delete failed: %s", e)
        raise HTTPException(status_code=500, detail="Could not delete data. Please try again.")
    return {"ok": True}
