#!/usr/bin/env python3
import json
import logging
import os
import threading

import anyio
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from comments.reader import CommentsNotFoundError, get_comments
from config.store import AppSettings, SettingsError, load_settings, save_settings, validate_settings
from download.events import EVENT_TOOL_DOWNLOAD_PROGRESS, Event, EventBus
from download.supervisor import ProcessSupervisor
from download.worker import OPERATION_COMMENTS, OPERATION_METADATA, OPERATION_VIDEO, DownloadService
from engine.json_utils import json_sanity_check, safe_json, safe_json_dumps
from engine.paths import CONFIG_DIR, LOG_DIR, ensure_dir, resolve_library_root_dir
from engine.runtime import APP_NAME, get_runtime_info
from engine.tool_download import ToolDownloadError, download_tools
from engine.tooling import check_tooling, resolve_ffprobe, update_yt_dlp
from library.catalog import (
    delete_live_metadata_files,
    delete_video_files,
    get_local_metadata_by_ids,
    get_metadata_index,
)
from library.identity import IdentityIndex
from library.reconcile import LocalFileCheckItem, verify_batch
from media.ffprobe import probe_media

EVENT_STREAM_POLL_SECONDS = 15.0


def _setup_logging(log_dir):
    ensure_dir(log_dir)
    root = logging.getLogger("")
    log_path = os.path.join(log_dir, "vidshelf.log")
    root.setLevel(logging.INFO)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            if os.path.abspath(getattr(handler, "baseFilename", "")) == os.path.abspath(log_path):
                return
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    file_handler.setLevel(logging.INFO)
    root.addHandler(file_handler)


class OperationRequest(BaseModel):
    url: str
    output_dir: str | None = None


class DownloadRequest(OperationRequest):
    quality: str | None = None
    is_live: bool = False


class VerifyItem(BaseModel):
    id: str
    title: str | None = None
    check_video: bool = True
    check_comments: bool = True


class VerifyRequest(BaseModel):
    items: list[VerifyItem]
    output_dir: str | None = None


class MetadataByIdsRequest(BaseModel):
    ids: list[str]
    output_dir: str | None = None


class ToolDownloadRequest(BaseModel):
    tools: list[str] = ["yt-dlp", "ffmpeg"]


class SettingsPayload(BaseModel):
    download_dir: str | None = None
    cookies_file: str | None = None
    cookies_source: str | None = None
    cookies_browser: str | None = None
    remote_components: str | None = None
    yt_dlp_path: str | None = None
    ffmpeg_path: str | None = None
    ffprobe_path: str | None = None
    download_quality: str | None = None


class SafeJSONResponse(JSONResponse):
    def render(self, content):
        return json.dumps(
            safe_json(content),
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        ).encode("utf-8")


app = FastAPI(
    title=APP_NAME,
    description="Local video archive API: downloads, metadata, comments and library checks.",
    default_response_class=SafeJSONResponse,
)


def _init_state(target, config_dir=None, supervisor=None, bus=None, error_log_dir=None):
    target.state.config_dir = config_dir or CONFIG_DIR
    target.state.settings = load_settings(target.state.config_dir)
    target.state.index = IdentityIndex()
    target.state.bus = bus or EventBus()
    target.state.supervisor = supervisor or ProcessSupervisor()
    target.state.service = DownloadService(
        target.state.supervisor,
        target.state.bus,
        target.state.index,
        lambda: target.state.settings,
        error_log_dir=error_log_dir,
    )
    target.state.ytdlp_update_lock = threading.Lock()
    target.state.ytdlp_update_running = False


@app.on_event("startup")
async def startup():
    ensure_dir(CONFIG_DIR)
    _setup_logging(LOG_DIR)
    _init_state(app)
    json_sanity_check()
    logging.info("%s started library=%s", APP_NAME, app.state.settings.download_dir)


def _library_root(output_dir=None):
    return resolve_library_root_dir(output_dir or app.state.settings.download_dir)


def _path_within(path, root):
    candidate = os.path.realpath(path)
    root = os.path.realpath(root)
    try:
        return os.path.commonpath([candidate, root]) == root
    except ValueError:
        return False


def format_sse(event: Event) -> str:
    return f"event: {event.name}\ndata: {safe_json_dumps(event.payload)}\n\n"


@app.get("/api/version")
async def api_version():
    return get_runtime_info()


@app.get("/api/tooling")
async def api_tooling():
    settings = app.state.settings
    return await anyio.to_thread.run_sync(
        check_tooling,
        settings.yt_dlp_path,
        settings.ffmpeg_path,
        settings.ffprobe_path,
    )


@app.post("/api/yt-dlp/update")
async def api_update_ytdlp():
    with app.state.ytdlp_update_lock:
        if app.state.ytdlp_update_running:
            raise HTTPException(status_code=409, detail="yt-dlp update already running")
        app.state.ytdlp_update_running = True
    try:
        return await anyio.to_thread.run_sync(update_yt_dlp, app.state.settings.yt_dlp_path)
    finally:
        app.state.ytdlp_update_running = False


@app.post("/api/tools/download", status_code=202)
async def api_tools_download(payload: ToolDownloadRequest):
    unknown = sorted(set(payload.tools) - {"yt-dlp", "ffmpeg"})
    if unknown:
        raise HTTPException(status_code=400, detail={"errors": [f"unknown tool: {name}" for name in unknown]})
    bus = app.state.bus

    def _run():
        try:
            download_tools(payload.tools, progress=lambda update: bus.publish(EVENT_TOOL_DOWNLOAD_PROGRESS, update))
        except ToolDownloadError as exc:
            logging.error("Tool download failed: %s", exc)

    threading.Thread(target=_run, name="tool-download", daemon=True).start()
    return {"status": "started", "tools": payload.tools}


@app.post("/api/videos/{video_id}/download", status_code=202)
async def api_start_download(video_id: str, payload: DownloadRequest):
    app.state.service.start_download(video_id, payload.url, payload.output_dir, payload.quality, payload.is_live)
    return {"status": "started", "id": video_id}


@app.post("/api/videos/{video_id}/metadata", status_code=202)
async def api_start_metadata(video_id: str, payload: OperationRequest):
    app.state.service.start_metadata_download(video_id, payload.url, payload.output_dir)
    return {"status": "started", "id": video_id}


@app.post("/api/videos/{video_id}/comments", status_code=202)
async def api_start_comments(video_id: str, payload: OperationRequest):
    app.state.service.start_comments_download(video_id, payload.url, payload.output_dir)
    return {"status": "started", "id": video_id}


@app.post("/api/videos/{video_id}/cancel")
async def api_cancel_operation(video_id: str, operation: str = Query(OPERATION_VIDEO)):
    if operation not in (OPERATION_VIDEO, OPERATION_METADATA, OPERATION_COMMENTS):
        raise HTTPException(status_code=400, detail=f"unknown operation: {operation}")
    return {"id": video_id, "cancelled": app.state.service.stop_operation(operation, video_id)}


@app.get("/api/videos/{video_id}/comments")
async def api_comments(video_id: str, limit: int | None = Query(None, ge=0), output_dir: str | None = None):
    try:
        items = await anyio.to_thread.run_sync(
            get_comments,
            _library_root(output_dir),
            video_id,
            app.state.index,
            limit,
        )
    except CommentsNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [item.to_dict() for item in items]


@app.get("/api/videos/{video_id}/file")
async def api_video_file(video_id: str, title: str | None = None, output_dir: str | None = None):
    path = await anyio.to_thread.run_sync(
        app.state.index.resolve_video,
        _library_root(output_dir),
        video_id,
        title,
    )
    if path is None:
        raise HTTPException(status_code=404, detail="Video file not found")
    return {"id": video_id, "path": str(path)}


@app.delete("/api/videos/{video_id}/files")
async def api_delete_files(video_id: str, output_dir: str | None = None):
    deleted = await anyio.to_thread.run_sync(delete_video_files, _library_root(output_dir), video_id, app.state.index)
    return {"id": video_id, "deleted": deleted}


@app.delete("/api/videos/{video_id}/live-metadata")
async def api_delete_live_metadata(video_id: str, output_dir: str | None = None):
    deleted = await anyio.to_thread.run_sync(
        delete_live_metadata_files,
        _library_root(output_dir),
        video_id,
        app.state.index,
    )
    return {"id": video_id, "deleted": deleted}


@app.get("/api/metadata/lookup")
async def api_metadata_lookup(url: str):
    try:
        metadata = await anyio.to_thread.run_sync(app.state.service.get_video_metadata, url)
    except (RuntimeError, ValueError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return metadata.to_dict()


@app.post("/api/library/verify")
async def api_library_verify(payload: VerifyRequest):
    items = [
        LocalFileCheckItem(
            id=item.id,
            title=item.title,
            check_video=item.check_video,
            check_comments=item.check_comments,
        )
        for item in payload.items
    ]
    results = await anyio.to_thread.run_sync(
        verify_batch,
        _library_root(payload.output_dir),
        items,
        app.state.index,
    )
    return [result.to_dict() for result in results]


@app.get("/api/library/metadata-index")
async def api_metadata_index(output_dir: str | None = None):
    return await anyio.to_thread.run_sync(get_metadata_index, _library_root(output_dir))


@app.post("/api/library/metadata")
async def api_local_metadata(payload: MetadataByIdsRequest):
    return await anyio.to_thread.run_sync(get_local_metadata_by_ids, _library_root(payload.output_dir), payload.ids)


@app.get("/api/media/probe")
async def api_media_probe(path: str):
    root = _library_root()
    if not _path_within(path, root):
        raise HTTPException(status_code=403, detail="path not allowed")
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="File not found")
    ffprobe = resolve_ffprobe(app.state.settings.ffprobe_path)
    try:
        info = await anyio.to_thread.run_sync(probe_media, path, ffprobe)
    except (RuntimeError, ValueError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return info.to_dict()


@app.get("/api/settings")
async def api_get_settings():
    return app.state.settings.to_dict()


@app.put("/api/settings")
async def api_put_settings(payload: SettingsPayload):
    merged = app.state.settings.to_dict()
    merged.update(payload.dict(exclude_unset=True))
    errors = validate_settings(merged)
    if errors:
        raise HTTPException(status_code=400, detail={"errors": errors})
    settings = AppSettings.from_dict(merged)
    try:
        save_settings(settings, app.state.config_dir)
    except SettingsError as exc:
        raise HTTPException(status_code=400, detail={"errors": exc.errors}) from exc
    except OSError as exc:
        raise HTTPException(status_code=500, detail=f"Failed to write settings: {exc}") from exc
    app.state.settings = settings
    return settings.to_dict()


@app.get("/api/events")
async def api_events(request: Request):
    subscription = app.state.bus.subscribe()

    async def event_gen():
        try:
            while True:
                if await request.is_disconnected():
                    break
                event = await anyio.to_thread.run_sync(subscription.get, EVENT_STREAM_POLL_SECONDS)
                if event is None:
                    yield ": keep-alive\n\n"
                    continue
                yield format_sse(event)
        finally:
            subscription.close()

    headers = {"Cache-Control": "no-cache", "Connection": "keep-alive"}
    return StreamingResponse(event_gen(), headers=headers, media_type="text/event-stream")


if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("VIDSHELF_HOST", "127.0.0.1")
    port = int(os.environ.get("VIDSHELF_PORT", "8000"))
    uvicorn.run("api.main:app", host=host, port=port, reload=False)
