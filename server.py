from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from fmicon_backend.config import (
    ACCEPTED_UPLOAD_EXTS,
    CLEANUP_INTERVAL_SECONDS,
    LOG_LEVEL,
    MAX_UPLOAD_BYTES,
    PORT,
    PURGE_ON_STARTUP,
    RESULT_TTL_MS,
    WORKSPACES_ROOT,
)
from fmicon_backend.converter import (
    ConversionError,
    FmIconConverter,
    IconConverter,
    run_conversion,
)
from fmicon_backend.registry import ResultRegistry, run_sweeper
from fmicon_backend.security import new_result_id, normalize_result_id, safe_join, safe_name
from fmicon_backend.workspace import (
    create_workspace,
    destroy_workspace,
    list_outputs,
    purge_orphan_workspaces,
    write_upload,
)
from fmicon_backend.zip_utils import collect_zip_members, extract_svgs, iter_zip_dir


BASE_DIR = Path(__file__).resolve().parent
STATIC_DIR = BASE_DIR / "public"

logger = logging.getLogger(__name__)

ROBOTS_TAG = "noindex, nofollow, noarchive, nosnippet, noimageindex, notranslate, nocache"


class ConvertResponse(BaseModel):
    id: str
    files: list[str]
    baseUrl: str
    ttlMinutes: int


class HealthResponse(BaseModel):
    ok: bool
    ts: str


class _RequestError(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def _registry(request: Request) -> ResultRegistry:
    return request.app.state.registry


def _lookup_or_404(request: Request, result_id: str):
    try:
        rid = normalize_result_id(result_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Not found or expired")
    entry = _registry(request).lookup(rid)
    if entry is None:
        raise HTTPException(status_code=404, detail="Not found or expired")
    return entry


async def _populate_sources(data: bytes, original: str, ext: str, src_dir: Path) -> None:
    if ext == ".zip":
        try:
            await asyncio.to_thread(extract_svgs, data, src_dir)
        except ValueError as e:
            raise _RequestError(400, str(e))
    else:
        write_upload(src_dir, original, data)

    if not list_outputs(src_dir):
        raise _RequestError(400, "No SVG files found")


def create_app(
    *,
    registry: Optional[ResultRegistry] = None,
    converter: Optional[IconConverter] = None,
    max_upload_bytes: int = MAX_UPLOAD_BYTES,
    ttl_ms: int = RESULT_TTL_MS,
    cleanup_interval_seconds: float = CLEANUP_INTERVAL_SECONDS,
    workspaces_root: Path = WORKSPACES_ROOT,
    purge_on_startup: bool = PURGE_ON_STARTUP,
    static_dir: Optional[Path] = STATIC_DIR,
) -> FastAPI:
    """Create the converter HTTP application."""
    if registry is None:
        registry = ResultRegistry(ttl_seconds=ttl_ms / 1000.0)
    if converter is None:
        converter = FmIconConverter()
    ttl_minutes = int(ttl_ms / 60000 + 0.5)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if purge_on_startup:
            try:
                purge_orphan_workspaces(workspaces_root)
            except OSError:
                logger.exception("orphan workspace purge failed")

        task = asyncio.create_task(run_sweeper(registry, cleanup_interval_seconds))
        app.state._sweeper_task = task
        try:
            yield
        finally:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            drained = registry.drain()
            if drained:
                logger.info("deleted %d result(s) on shutdown", drained)

    app = FastAPI(title="FM Icon Converter", lifespan=lifespan)
    app.state.registry = registry
    app.state.converter = converter

    @app.middleware("http")
    async def _anti_crawl_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Robots-Tag"] = ROBOTS_TAG
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response

    @app.get("/healthz", response_model=HealthResponse)
    async def healthz() -> HealthResponse:
        return HealthResponse(ok=True, ts=datetime.now(timezone.utc).isoformat())

    @app.post("/api/convert", response_model=ConvertResponse)
    async def convert(request: Request, file: Optional[UploadFile] = File(None)) -> ConvertResponse:
        """Convert an uploaded .svg or .zip of SVGs into FileMaker icons."""
        if file is None:
            raise HTTPException(status_code=400, detail="No file received")

        # Limit read so oversized uploads are rejected before touching disk.
        data = await file.read(max_upload_bytes + 1)
        if len(data) > max_upload_bytes:
            raise HTTPException(status_code=413, detail="Upload too large")

        original = file.filename or "upload"
        ext = Path(original).suffix.lower()
        if ext not in ACCEPTED_UPLOAD_EXTS:
            raise HTTPException(status_code=400, detail="Please upload only .svg or .zip files")

        result_id = new_result_id()
        ws = create_workspace(result_id, workspaces_root)
        registered = False
        try:
            await _populate_sources(data, original, ext, ws.src_dir)

            outcome = await run_conversion(request.app.state.converter, ws.src_dir, ws.out_dir)
            if outcome.empty:
                raise _RequestError(500, "Conversion produced no SVG files")

            results = _registry(request)
            results.register(results.new_entry(result_id, ws.root, ws.out_dir))
            registered = True
        except _RequestError as e:
            raise HTTPException(status_code=e.status_code, detail=e.detail)
        except ConversionError:
            logger.exception("conversion failed for result %s", result_id)
            raise HTTPException(status_code=500, detail="Processing failed")
        except Exception:
            logger.exception("unexpected error while processing result %s", result_id)
            raise HTTPException(status_code=500, detail="Processing failed")
        finally:
            # Also runs on cancellation (client disconnect, shutdown).
            if not registered:
                destroy_workspace(ws.root)

        logger.info("result %s: converted %d file(s)", result_id, len(outcome.files))
        return ConvertResponse(
            id=result_id,
            files=outcome.files,
            baseUrl=f"/r/{result_id}",
            ttlMinutes=ttl_minutes,
        )

    @app.get("/r/{result_id}/file/{name}")
    async def get_result_file(request: Request, result_id: str, name: str) -> FileResponse:
        """Serve one converted icon.

        Security:
        - result_id must be a known, unswept id
        - name is sanitized, then safe_join ensures it cannot escape the output dir
        """
        entry = _lookup_or_404(request, result_id)
        filename = safe_name(name)
        try:
            path = safe_join(entry.output_dir, filename)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid path")
        if not path.is_file():
            raise HTTPException(status_code=404, detail="File not found")

        return FileResponse(
            path,
            media_type="image/svg+xml; charset=utf-8",
            filename=filename,
            headers={"Cache-Control": "no-store"},
        )

    @app.get("/r/{result_id}/zip")
    async def get_result_zip(request: Request, result_id: str) -> StreamingResponse:
        """Stream all converted icons of a result as one ZIP."""
        entry = _lookup_or_404(request, result_id)
        try:
            members = collect_zip_members(entry.output_dir)
        except OSError:
            logger.exception("cannot list outputs for result %s", entry.id)
            raise HTTPException(status_code=500, detail="ZIP creation failed")

        def _stream():
            # Headers are already sent once this runs; failures can only be logged.
            try:
                yield from iter_zip_dir(entry.output_dir, members)
            except Exception:
                logger.exception("ZIP streaming failed for result %s", entry.id)
                raise

        headers = {
            "Content-Disposition": f'attachment; filename="fm-icons-{entry.id}.zip"',
            "Cache-Control": "no-store",
        }
        return StreamingResponse(_stream(), media_type="application/zip", headers=headers)

    # Static file hosting (index.html + robots.txt).
    # Note: define API routes above, then mount static at '/'.
    if static_dir is not None and Path(static_dir).is_dir():
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")

    return app


app = create_app()


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.environ.get("HOST", "0.0.0.0")
    uvicorn.run("server:app", host=host, port=PORT, reload=False)
