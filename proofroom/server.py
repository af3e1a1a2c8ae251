"""Thin HTTP surface over the capture and serving pipeline."""

import logging
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel
from fastapi.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import (
    FetchTimeout,
    MalformedInput,
    PageNotFound,
    ProjectNotFound,
    ProofroomError,
    UpstreamError,
)
from .ingest import ArchiveIngester, UploadedFile, ingest_images
from .mirror import SiteMirror
from .projects import Workspace
from .serve import ServeTimeResolver

LONG_CACHE = "public, max-age=31536000"
NO_CACHE = "no-cache, no-store, must-revalidate"


class UploadUrlRequest(BaseModel):
    url: str = ""
    name: str = ""
    clientName: str = ""
    description: str = ""


class InitProjectRequest(BaseModel):
    name: str = ""
    clientName: str = ""
    description: str = ""
    fileCount: int = 0


class FinaliseProjectRequest(BaseModel):
    projectId: str = ""


def status_for(exc: Exception) -> int:
    if isinstance(exc, (ProjectNotFound, PageNotFound)):
        return 404
    if isinstance(exc, FetchTimeout):
        return 408
    if isinstance(exc, (MalformedInput, UpstreamError)):
        return 400
    return 500


def _created(project, warnings) -> dict:
    return {
        "success": True,
        "project": project.to_dict(),
        "shareUrl": f"/review/{project.id}",
        "warnings": warnings,
    }


def create_app(ws: Workspace) -> FastAPI:
    app = FastAPI(title="proofroom")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    prefix = ws.settings.api_prefix.rstrip("/")

    @app.middleware("http")
    async def default_cache_control(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Cache-Control", NO_CACHE)
        return response

    @app.exception_handler(ProofroomError)
    async def proofroom_error(request: Request, exc: ProofroomError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logging.error("request failed: %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"error": str(exc)}, status_code=status)

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse({"error": "invalid request body"}, status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    # -------------------- serving --------------------

    @app.get(prefix + "/page/{project_id}/{page_path:path}", response_class=HTMLResponse)
    def page(project_id: str, page_path: str, request: Request) -> HTMLResponse:
        resolver = ServeTimeResolver(ws, str(request.base_url).rstrip("/"))
        html = resolver.resolve_for_serving(project_id, page_path)
        return HTMLResponse(html, headers={"Cache-Control": LONG_CACHE})

    @app.get(prefix + "/asset/{project_id}/{asset_path:path}")
    def asset(project_id: str, asset_path: str) -> Response:
        key = f"{project_id}/{asset_path}"
        found = ws.content.read_with_metadata(key)
        if found is None:
            return JSONResponse({"error": "Asset not found", "assetKey": key}, status_code=404)
        data, content_type = found
        return Response(data, media_type=content_type, headers={"Cache-Control": LONG_CACHE})

    # -------------------- projects --------------------

    @app.get(prefix + "/projects")
    def projects() -> dict:
        return {"projects": [s.to_dict() for s in ws.list_projects()]}

    @app.get(prefix + "/project/{project_id}")
    def project(project_id: str) -> dict:
        return ws.get_project(project_id, with_content=True)

    @app.delete(prefix + "/project/{project_id}")
    def delete_project(project_id: str) -> dict:
        ws.delete_project(project_id)
        return {"success": True, "deletedId": project_id}

    # -------------------- capture --------------------

    @app.post(prefix + "/upload-url")
    def upload_url(body: UploadUrlRequest) -> dict:
        if not body.url:
            raise MalformedInput("URL is required")
        project, warnings = SiteMirror(ws).mirror_project(
            body.url, body.name, body.clientName, body.description
        )
        return _created(project, warnings)

    @app.post(prefix + "/upload-project")
    def upload_project(
        file: Optional[UploadFile] = File(None),
        name: str = Form(""),
        clientName: str = Form(""),  # noqa: N803
        description: str = Form(""),
    ) -> dict:
        if file is None:
            raise MalformedInput("No file uploaded")
        project, warnings = ArchiveIngester(ws).upload_project(
            file.file.read(), name, clientName, description
        )
        return _created(project, warnings)

    @app.post(prefix + "/upload-images")
    async def upload_images(request: Request) -> dict:
        form = await request.form()
        fields: Dict[str, str] = {}
        files: Dict[str, UploadedFile] = {}
        for key, value in form.multi_items():
            if isinstance(value, str):
                fields[key] = value
            else:
                files[key] = UploadedFile(value.filename or key, await value.read(), value.content_type or "")
        # clients may send the assignments as a json blob part
        if "assignments" in files:
            fields["assignments"] = files.pop("assignments").data.decode("utf-8", errors="replace")
        if not fields.get("assignments"):
            raise MalformedInput("Image assignments required")
        project = await run_in_threadpool(
            ingest_images,
            ws,
            fields["assignments"],
            files,
            fields.get("name", ""),
            fields.get("clientName", ""),
            fields.get("description", ""),
        )
        return _created(project, [])

    # -------------------- chunked upload --------------------

    @app.post(prefix + "/init-project")
    def init_project(body: InitProjectRequest) -> dict:
        project = ws.init_project(body.name, body.clientName, body.description, expected_files=body.fileCount)
        return {"success": True, "projectId": project.id}

    @app.post(prefix + "/upload-file")
    def upload_file(
        file: Optional[UploadFile] = File(None),
        projectId: str = Form(""),  # noqa: N803
        path: str = Form(""),
        contentType: str = Form("application/octet-stream"),  # noqa: N803
        isHtml: str = Form("false"),  # noqa: N803
    ) -> dict:
        if file is None or not projectId or not path:
            raise MalformedInput("Missing required fields")
        key, _ = ws.add_file(
            projectId,
            path,
            file.file.read(),
            contentType,
            is_html=isHtml.lower() == "true",
        )
        uploaded = ws.load(projectId).uploaded_files
        return {"success": True, "assetKey": key, "uploadedCount": uploaded}

    @app.post(prefix + "/finalise-project")
    def finalise_project(body: FinaliseProjectRequest) -> dict:
        if not body.projectId:
            raise MalformedInput("Project ID required")
        return _created(ws.finalize_project(body.projectId), [])

    return app


def serve(workspace: Workspace, bind: str = "127.0.0.1", port: int = 8787) -> None:
    logging.info("serving on http://%s:%d%s", bind, port, workspace.settings.api_prefix)
    uvicorn.run(create_app(workspace), host=bind, port=port)
