"""FastAPI entry point exposing the Product Studio REST API."""

from __future__ import annotations

import logging
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, HTTPException, Response, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware

from . import messages
from .config import get_settings
from .schemas import (
    DeleteResponse,
    ModeRequest,
    RefineRequest,
    SelectRequest,
    SessionResponse,
)
from .service import VARIANT_COUNT, ProductStudioService, get_product_studio_service
from .sessionservice.sessionservice import (
    BackToGrid,
    Event,
    FileRejected,
    FileSelected,
    ImageSelected,
    InvalidTransitionError,
    ModeChanged,
    RefinementSubmitted,
    RetryRequested,
    SessionNotFoundError,
    SessionSnapshot,
    SessionStore,
    StartOver,
    StudioSession,
    VariationsRequested,
    get_session_store,
)

logger = logging.getLogger(__name__)


def _to_response(session_id: str, snapshot: SessionSnapshot) -> SessionResponse:
    selected = snapshot.selected_image
    return SessionResponse(
        session_id=session_id,
        state=snapshot.state,
        mode=snapshot.mode,
        source_filename=snapshot.source.filename if snapshot.source else None,
        images=[image.data_url for image in snapshot.batch],
        selected_index=snapshot.selected_index,
        selected_image=selected.data_url if selected else None,
        processing_message=snapshot.processing_message,
        error=snapshot.error,
        inline_error=snapshot.inline_error,
        can_retry=snapshot.source is not None,
    )


def _get_session(store: SessionStore, session_id: str) -> StudioSession:
    try:
        return store.get(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found",
        ) from exc


def _dispatch(session: StudioSession, event: Event) -> SessionResponse:
    try:
        snapshot = session.dispatch(event)
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return _to_response(session.session_id, snapshot)


app = FastAPI(title="Product Studio Backend", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", summary="Health Check Endpoint")
async def healthcheck():
    settings = get_settings()
    model = (
        settings.gemini_image_model_id
        if settings.image_provider == "gemini"
        else settings.openai_image_model_id
    )
    return {
        "status": "ok",
        "imageProvider": settings.image_provider,
        "imageModel": model,
        "variants": VARIANT_COUNT,
    }


@app.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a new studio session in the IDLE state",
)
async def create_session(
    service: ProductStudioService = Depends(get_product_studio_service),
    store: SessionStore = Depends(get_session_store),
):
    session = store.create(service)
    return _to_response(session.session_id, session.snapshot)


@app.get(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    summary="Return the current session snapshot",
)
async def get_session(
    session_id: str,
    wait: bool = False,
    store: SessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    snapshot = await session.settled() if wait else session.snapshot
    return _to_response(session_id, snapshot)


@app.delete(
    "/sessions/{session_id}",
    response_model=DeleteResponse,
    summary="Forget a session",
)
async def delete_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    try:
        store.delete(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found",
        ) from exc
    return DeleteResponse(status="success", message=f"Session {session_id} deleted")


@app.put(
    "/sessions/{session_id}/mode",
    response_model=SessionResponse,
    summary="Choose studio or lifestyle output for the next upload",
)
async def change_mode(
    session_id: str,
    payload: ModeRequest,
    store: SessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    return _dispatch(session, ModeChanged(mode=payload.mode))


@app.post(
    "/sessions/{session_id}/upload",
    response_model=SessionResponse,
    summary="Select or drop a product photo and start generating",
)
async def upload(
    session_id: str,
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    settings = get_settings()
    data = await file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        logger.warning("Rejected upload of more than %d bytes for session %s", settings.max_upload_bytes, session_id)
        return _dispatch(session, FileRejected(message=messages.FILE_TOO_LARGE))

    event = FileSelected(
        filename=file.filename or "",
        mime_type=file.content_type,
        data=data,
    )
    return _dispatch(session, event)


@app.post(
    "/sessions/{session_id}/select",
    response_model=SessionResponse,
    summary="Open one image of the grid in the editing view",
)
async def select_image(
    session_id: str,
    payload: SelectRequest,
    store: SessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    return _dispatch(session, ImageSelected(index=payload.index))


@app.post(
    "/sessions/{session_id}/refine",
    response_model=SessionResponse,
    summary="Refine the selected image with a free-text prompt",
)
async def refine(
    session_id: str,
    payload: RefineRequest,
    store: SessionStore = Depends(get_session_store),
):
    if not payload.prompt.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Prompt must not be empty",
        )
    session = _get_session(store, session_id)
    return _dispatch(session, RefinementSubmitted(prompt=payload.prompt))


@app.post(
    "/sessions/{session_id}/variations",
    response_model=SessionResponse,
    summary="Generate four more variations of the selected image",
)
async def variations(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    return _dispatch(session, VariationsRequested())


@app.post(
    "/sessions/{session_id}/back",
    response_model=SessionResponse,
    summary="Leave the editing view and return to the grid",
)
async def back_to_grid(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    return _dispatch(session, BackToGrid())


@app.get(
    "/sessions/{session_id}/download",
    summary="Download the image shown in the editing view",
)
async def download(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    try:
        payload = session.download()
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    quoted = quote(payload.filename)
    if quoted != payload.filename:
        disposition = f"attachment; filename*=utf-8''{quoted}"
    else:
        disposition = f'attachment; filename="{payload.filename}"'
    return Response(
        content=payload.data,
        media_type=payload.mime_type,
        headers={"Content-Disposition": disposition},
    )


@app.post(
    "/sessions/{session_id}/retry",
    response_model=SessionResponse,
    summary="Run the initial generation again with the stored photo",
)
async def retry(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    return _dispatch(session, RetryRequested())


@app.post(
    "/sessions/{session_id}/reset",
    response_model=SessionResponse,
    summary="Start over or discard: drop everything and return to IDLE",
)
async def reset(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    return _dispatch(session, StartOver())


__all__ = ["app"]


if __name__ == "__main__":  # pragma: no cover - convenience entry point
    import uvicorn

    uvicorn.run("productstudio.main:app", host="0.0.0.0", port=8000, reload=True)
