"""Tests covering the FastAPI routes defined in :mod:`productstudio.main`."""

from __future__ import annotations

import base64
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))
from productstudio import messages
from productstudio.aiservices.imagegenerationclient import (
    ImageCandidates,
    ImageGenerationClient,
    NoCandidates,
)
from productstudio.config import Settings
from productstudio.main import app
from productstudio.prompts import STUDIO_PROMPT, VARIATIONS_PROMPT, LIFESTYLE_PROMPT
from productstudio.schemas import GeneratedImage
from productstudio.service import ProductStudioService, get_product_studio_service
from productstudio.sessionservice.sessionservice import SessionStore, get_session_store


class StubImageClient(ImageGenerationClient):
    """Test double for the external image service.

    Every request returns a distinct PNG unless a response or exception is
    queued for that request number.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, bytes, str]] = []
        self.queued: dict[int, object] = {}

    async def generate(self, image_mime, image_data, instruction):
        self.calls.append((image_mime, image_data, instruction))
        number = len(self.calls) - 1
        outcome = self.queued.get(number)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome
        return ImageCandidates((GeneratedImage(mime_type="image/png", data=f"img-{number}".encode()),))


@pytest.fixture
def client():
    """Yield a :class:`TestClient` backed by stubbed dependencies."""

    stub = StubImageClient()
    service = ProductStudioService(Settings(), image_client=stub)
    store = SessionStore()
    app.dependency_overrides[get_product_studio_service] = lambda: service
    app.dependency_overrides[get_session_store] = lambda: store

    with TestClient(app) as test_client:
        test_client.app.state.stub_client = stub
        test_client.app.state.session_store = store
        yield test_client

    app.dependency_overrides.clear()
    for attr in ("stub_client", "session_store"):
        if hasattr(app.state, attr):
            delattr(app.state, attr)


def get_stub(client: TestClient) -> StubImageClient:
    return client.app.state.stub_client  # type: ignore[return-value]


def _new_session(client: TestClient) -> str:
    response = client.post("/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


def _upload(client: TestClient, session_id: str, *, name: str = "photo.png", content_type: str = "image/png", data: bytes = b"photo-bytes"):
    return client.post(f"/sessions/{session_id}/upload", files={"file": (name, data, content_type)})


def _settle(client: TestClient, session_id: str) -> dict:
    response = client.get(f"/sessions/{session_id}", params={"wait": True})
    assert response.status_code == 200
    return response.json()


def _data(data_url: str) -> bytes:
    return base64.b64decode(data_url.split(",", 1)[1])


def _to_success(client: TestClient, **upload_kwargs) -> str:
    session_id = _new_session(client)
    assert _upload(client, session_id, **upload_kwargs).status_code == 200
    assert _settle(client, session_id)["state"] == "SUCCESS"
    return session_id


def test_healthcheck_reports_backend_settings(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["imageProvider"] == "gemini"
    assert payload["imageModel"] == "gemini-2.5-flash-image"
    assert payload["variants"] == 4


def test_new_session_starts_idle(client: TestClient) -> None:
    response = client.post("/sessions")

    body = response.json()
    assert body["state"] == "IDLE"
    assert body["mode"] == "ecommerce"
    assert body["images"] == []
    assert body["can_retry"] is False


def test_unknown_session_returns_404(client: TestClient) -> None:
    response = client.get("/sessions/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"detail": "Session does-not-exist not found"}


def test_upload_in_studio_mode_produces_four_images(client: TestClient) -> None:
    session_id = _new_session(client)

    response = _upload(client, session_id)

    assert response.status_code == 200
    assert response.json()["state"] == "PROCESSING"
    assert response.json()["processing_message"] == messages.PROCESSING_STUDIO

    body = _settle(client, session_id)
    assert body["state"] == "SUCCESS"
    assert [_data(url) for url in body["images"]] == [b"img-0", b"img-1", b"img-2", b"img-3"]
    assert body["selected_index"] is None

    calls = get_stub(client).calls
    assert len(calls) == 4
    assert all(call == ("image/png", b"photo-bytes", STUDIO_PROMPT) for call in calls)


def test_lifestyle_mode_changes_instruction_for_next_upload(client: TestClient) -> None:
    session_id = _new_session(client)

    response = client.put(f"/sessions/{session_id}/mode", json={"mode": "social"})
    assert response.status_code == 200
    assert response.json()["mode"] == "social"
    assert response.json()["state"] == "IDLE"

    _upload(client, session_id)
    _settle(client, session_id)

    assert {call[2] for call in get_stub(client).calls} == {LIFESTYLE_PROMPT}


def test_mode_change_rejects_unknown_mode(client: TestClient) -> None:
    session_id = _new_session(client)

    response = client.put(f"/sessions/{session_id}/mode", json={"mode": "cinematic"})

    assert response.status_code == 422


def test_mode_change_outside_idle_conflicts(client: TestClient) -> None:
    session_id = _to_success(client)

    response = client.put(f"/sessions/{session_id}/mode", json={"mode": "social"})

    assert response.status_code == 409


def test_invalid_file_stays_idle_with_inline_error(client: TestClient) -> None:
    session_id = _new_session(client)

    response = _upload(client, session_id, name="notes.txt", content_type="text/plain", data=b"hello")

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "IDLE"
    assert body["inline_error"] == messages.INVALID_FILE
    assert body["error"] is None
    assert get_stub(client).calls == []


def test_oversized_file_is_rejected_inline(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from productstudio import main

    monkeypatch.setattr(main, "get_settings", lambda: Settings(max_upload_bytes=4))
    session_id = _new_session(client)

    body = _upload(client, session_id, data=b"too-large").json()

    assert body["state"] == "IDLE"
    assert body["inline_error"] == messages.FILE_TOO_LARGE
    assert get_stub(client).calls == []


def test_partial_batch_ends_in_error_and_allows_retry(client: TestClient) -> None:
    stub = get_stub(client)
    stub.queued[2] = NoCandidates()
    session_id = _new_session(client)

    _upload(client, session_id)
    body = _settle(client, session_id)

    assert body["state"] == "ERROR"
    assert body["error"] == messages.GENERATION_FAILED
    assert body["images"] == []
    assert body["can_retry"] is True

    response = client.post(f"/sessions/{session_id}/retry")
    assert response.status_code == 200
    assert response.json()["state"] == "PROCESSING"
    assert response.json()["error"] is None

    body = _settle(client, session_id)
    assert body["state"] == "SUCCESS"
    assert len(body["images"]) == 4
    assert all(call[1] == b"photo-bytes" for call in stub.calls)


def test_service_rejection_ends_in_error(client: TestClient) -> None:
    get_stub(client).queued[0] = RuntimeError("503 from upstream")
    session_id = _new_session(client)

    _upload(client, session_id)
    body = _settle(client, session_id)

    assert body["state"] == "ERROR"
    assert body["error"] == messages.GENERATION_FAILED
    assert "503" not in body["error"]


def test_select_opens_editing_view(client: TestClient) -> None:
    session_id = _to_success(client)
    grid = _settle(client, session_id)["images"]

    response = client.post(f"/sessions/{session_id}/select", json={"index": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "EDITING"
    assert body["selected_index"] == 2
    assert body["selected_image"] == grid[2]


def test_select_out_of_range_is_unprocessable(client: TestClient) -> None:
    session_id = _to_success(client)

    assert client.post(f"/sessions/{session_id}/select", json={"index": 7}).status_code == 422
    assert client.post(f"/sessions/{session_id}/select", json={"index": -1}).status_code == 422


def test_refine_with_prompt_replaces_grid(client: TestClient) -> None:
    stub = get_stub(client)
    session_id = _to_success(client)
    client.post(f"/sessions/{session_id}/select", json={"index": 1})

    response = client.post(f"/sessions/{session_id}/refine", json={"prompt": "add a rosemary sprig"})

    assert response.status_code == 200
    assert response.json()["state"] == "PROCESSING"
    assert response.json()["processing_message"] == messages.PROCESSING_REFINEMENT

    body = _settle(client, session_id)
    assert body["state"] == "SUCCESS"
    assert body["selected_index"] is None
    assert [_data(url) for url in body["images"]] == [b"img-4", b"img-5", b"img-6", b"img-7"]
    assert all(call == ("image/png", b"img-1", "add a rosemary sprig") for call in stub.calls[4:])


def test_refine_requires_non_empty_prompt(client: TestClient) -> None:
    session_id = _to_success(client)
    client.post(f"/sessions/{session_id}/select", json={"index": 0})

    response = client.post(f"/sessions/{session_id}/refine", json={"prompt": "   "})

    assert response.status_code == 422
    assert response.json()["detail"] == "Prompt must not be empty"
    assert _settle(client, session_id)["state"] == "EDITING"


def test_variations_use_canned_instruction(client: TestClient) -> None:
    stub = get_stub(client)
    session_id = _to_success(client)
    client.post(f"/sessions/{session_id}/select", json={"index": 3})

    response = client.post(f"/sessions/{session_id}/variations")

    assert response.status_code == 200
    body = _settle(client, session_id)
    assert body["state"] == "SUCCESS"
    assert len(body["images"]) == 4
    assert all(call == ("image/png", b"img-3", VARIATIONS_PROMPT) for call in stub.calls[4:])


def test_refinement_failure_uses_refinement_message(client: TestClient) -> None:
    stub = get_stub(client)
    session_id = _to_success(client)
    client.post(f"/sessions/{session_id}/select", json={"index": 0})
    stub.queued[5] = ConnectionError("reset by peer")

    client.post(f"/sessions/{session_id}/variations")
    body = _settle(client, session_id)

    assert body["state"] == "ERROR"
    assert body["error"] == messages.REFINEMENT_FAILED


def test_refine_outside_editing_conflicts(client: TestClient) -> None:
    session_id = _to_success(client)

    assert client.post(f"/sessions/{session_id}/refine", json={"prompt": "more light"}).status_code == 409
    assert client.post(f"/sessions/{session_id}/variations").status_code == 409


def test_back_returns_to_grid(client: TestClient) -> None:
    session_id = _to_success(client)
    client.post(f"/sessions/{session_id}/select", json={"index": 0})

    response = client.post(f"/sessions/{session_id}/back")

    body = response.json()
    assert body["state"] == "SUCCESS"
    assert body["selected_index"] is None
    assert len(body["images"]) == 4


def test_download_returns_selected_image_with_derived_filename(client: TestClient) -> None:
    session_id = _to_success(client, name="baseName.png")
    client.post(f"/sessions/{session_id}/select", json={"index": 2})

    response = client.get(f"/sessions/{session_id}/download")

    assert response.status_code == 200
    assert response.content == b"img-2"
    assert response.headers["content-type"] == "image/png"
    assert response.headers["content-disposition"] == 'attachment; filename="baseName-ecommerce-editado.jpeg"'
    assert _settle(client, session_id)["state"] == "EDITING"


def test_download_outside_editing_conflicts(client: TestClient) -> None:
    session_id = _to_success(client)

    response = client.get(f"/sessions/{session_id}/download")

    assert response.status_code == 409


def test_reset_from_editing_discards_everything(client: TestClient) -> None:
    session_id = _to_success(client)
    client.post(f"/sessions/{session_id}/select", json={"index": 0})

    response = client.post(f"/sessions/{session_id}/reset")

    body = response.json()
    assert body["state"] == "IDLE"
    assert body["images"] == []
    assert body["selected_image"] is None
    assert body["source_filename"] is None
    assert body["error"] is None
    assert body["can_retry"] is False


def test_retry_without_error_conflicts(client: TestClient) -> None:
    session_id = _new_session(client)

    response = client.post(f"/sessions/{session_id}/retry")

    assert response.status_code == 409


def test_delete_session(client: TestClient) -> None:
    session_id = _new_session(client)

    response = client.delete(f"/sessions/{session_id}")

    assert response.status_code == 200
    assert response.json() == {"status": "success", "message": f"Session {session_id} deleted"}
    assert client.get(f"/sessions/{session_id}").status_code == 404
    assert client.delete(f"/sessions/{session_id}").status_code == 404
