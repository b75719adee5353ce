import pytest
from fastapi.testclient import TestClient

from pitchframe.backend import web
from pitchframe.backend.storage import InMemoryPitchStore


@pytest.fixture
def client(monkeypatch, tmp_path):
    monkeypatch.setattr(web, "pitch_store", InMemoryPitchStore())
    monkeypatch.setattr(web, "DECK_STORAGE_ROOT", tmp_path / "decks")
    monkeypatch.setattr(web, "_fire_and_forget", lambda fn, *args, **kwargs: fn(*args, **kwargs))
    with TestClient(web.app) as test_client:
        yield test_client


def _submit_text(client, text, **extra):
    response = client.post("/api/pitches", data={"text": text, **extra})
    assert response.status_code == 200, response.text
    return response.json()["pitch_id"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "storage": "memory"}


def test_analyze_text(client, financial_text):
    response = client.post("/api/analyze", json={"text": financial_text})
    assert response.status_code == 200
    body = response.json()
    assert body["scores"]["financial_viability"] == 100
    assert body["scorer"] == "heuristic"


def test_analyze_empty_text_is_400(client):
    assert client.post("/api/analyze", json={"text": "  "}).status_code == 400


def test_bad_strategy_is_500(client, monkeypatch):
    monkeypatch.setenv("PITCHFRAME_SCORING_STRATEGY", "magic")
    assert client.post("/api/analyze", json={"text": "A pitch."}).status_code == 500


def test_mock_strategy_from_env(client, monkeypatch):
    monkeypatch.setenv("PITCHFRAME_SCORING_STRATEGY", "mock")
    monkeypatch.setenv("PITCHFRAME_MOCK_SEED", "11")
    first = client.post("/api/analyze", json={"text": "A pitch."}).json()
    second = client.post("/api/analyze", json={"text": "Another."}).json()
    assert first["scorer"] == "mock"
    assert first["scores"] == second["scores"]


def test_text_submission_lifecycle(client, strong_pitch):
    create = client.post("/api/pitches", data={"text": strong_pitch, "user_id": "u1"})
    assert create.status_code == 200
    assert create.json()["status"] == "pending"
    pitch_id = create.json()["pitch_id"]

    body = client.get(f"/api/pitches/{pitch_id}").json()
    assert body["status"] == "completed"
    assert body["user_id"] == "u1"
    assert body["source"] == "text"
    assert body["text_excerpt"] == strong_pitch
    assert body["analysis"]["overall_score"] >= 30


def test_submission_requires_content(client):
    assert client.post("/api/pitches", data={"user_id": "u1"}).status_code == 400
    assert client.post("/api/pitches", data={"text": "   "}).status_code == 400


def test_deck_submission(client, pptx_deck):
    with pptx_deck.open("rb") as handle:
        response = client.post(
            "/api/pitches",
            files={"deck": ("Pitch Deck.pptx", handle, "application/octet-stream")},
        )
    assert response.status_code == 200, response.text
    body = client.get(f"/api/pitches/{response.json()['pitch_id']}").json()
    assert body["status"] == "completed"
    assert body["source"] == "deck"
    assert body["filename"] == "Pitch_Deck.pptx"
    assert "Acme Routing" in body["text_excerpt"]


def test_legacy_ppt_is_rejected(client):
    response = client.post(
        "/api/pitches",
        files={"deck": ("old.ppt", b"binary", "application/vnd.ms-powerpoint")},
    )
    assert response.status_code == 400
    assert ".ppt" in response.json()["detail"]


def test_empty_deck_is_rejected(client):
    response = client.post("/api/pitches", files={"deck": ("empty.pdf", b"", "application/pdf")})
    assert response.status_code == 400


def test_history_listing(client, strong_pitch, financial_text):
    first = _submit_text(client, strong_pitch, user_id="u1")
    _submit_text(client, financial_text, user_id="u2")

    items = client.get("/api/pitches", params={"user_id": "u1"}).json()
    assert [item["pitch_id"] for item in items] == [first]
    assert items[0]["status"] == "completed"
    assert items[0]["overall_score"] is not None
    assert len(items[0]["top_recommendations"]) <= 2

    assert len(client.get("/api/pitches", params={"period": "today"}).json()) == 2
    assert len(client.get("/api/pitches", params={"status": "error"}).json()) == 0


@pytest.mark.parametrize(
    "params",
    [{"period": "decade"}, {"status": "finished"}, {"sort": "name-asc"}],
)
def test_history_rejects_bad_filters(client, params):
    assert client.get("/api/pitches", params=params).status_code == 400


def test_unknown_pitch_is_404(client):
    assert client.get("/api/pitches/nope").status_code == 404
    assert client.get("/api/pitches/nope/report").status_code == 404
    assert client.delete("/api/pitches/nope").status_code == 404


def test_reanalyze_creates_new_submission(client, strong_pitch):
    original_id = _submit_text(client, strong_pitch)
    original = client.get(f"/api/pitches/{original_id}").json()

    response = client.post(f"/api/pitches/{original_id}/reanalyze")
    assert response.status_code == 200
    new_id = response.json()["pitch_id"]
    assert new_id != original_id

    rerun = client.get(f"/api/pitches/{new_id}").json()
    assert rerun["parent_pitch_id"] == original_id
    assert rerun["status"] == "completed"
    assert rerun["analysis"]["scores"] == original["analysis"]["scores"]
    assert client.get(f"/api/pitches/{original_id}").json()["analysis"] == original["analysis"]


def test_reports_for_completed_pitch(client, strong_pitch):
    pitch_id = _submit_text(client, strong_pitch)

    html = client.get(f"/api/pitches/{pitch_id}/report")
    assert html.status_code == 200
    assert html.headers["content-type"].startswith("text/html")
    assert "Overall Score" in html.text

    download = client.get(f"/api/pitches/{pitch_id}/report.json")
    assert download.status_code == 200
    assert 'filename="pitch_analysis.json"' in download.headers["content-disposition"]
    assert download.headers["content-disposition"].startswith("attachment")
    assert download.json()["analysis"]["summary"]


def test_reports_for_pending_pitch_are_409(client):
    web.pitch_store.create_pitch("pending-1")
    assert client.get("/api/pitches/pending-1/report").status_code == 409
    assert client.get("/api/pitches/pending-1/report.json").status_code == 409
    assert client.get("/api/pitches/pending-1/report-url").status_code == 409


def test_report_url(client, strong_pitch, monkeypatch):
    pitch_id = _submit_text(client, strong_pitch)
    assert client.get(f"/api/pitches/{pitch_id}/report-url").status_code == 404

    web.pitch_store.update_pitch(pitch_id, report_uri="gs://reports/pitches/anonymous/x/report.html")
    monkeypatch.setattr(web, "generate_signed_download_url", lambda uri: "https://signed.example/report")
    body = client.get(f"/api/pitches/{pitch_id}/report-url").json()
    assert body == {
        "pitch_id": pitch_id,
        "signed_url": "https://signed.example/report",
        "expires_in_seconds": 3600,
    }


def test_delete_pitch(client, strong_pitch):
    pitch_id = _submit_text(client, strong_pitch)
    assert client.delete(f"/api/pitches/{pitch_id}").json() == {"pitch_id": pitch_id, "deleted": True}
    assert client.get(f"/api/pitches/{pitch_id}").status_code == 404


def test_deck_with_blank_text_field_is_accepted(client, pptx_deck):
    with pptx_deck.open("rb") as handle:
        response = client.post(
            "/api/pitches",
            data={"text": "   "},
            files={"deck": ("pitch.pptx", handle, "application/octet-stream")},
        )
    assert response.status_code == 200, response.text
    body = client.get(f"/api/pitches/{response.json()['pitch_id']}").json()
    assert body["source"] == "deck"
    assert body["status"] == "completed"


def test_deck_with_real_text_is_rejected(client, pptx_deck, strong_pitch):
    with pptx_deck.open("rb") as handle:
        response = client.post(
            "/api/pitches",
            data={"text": strong_pitch},
            files={"deck": ("pitch.pptx", handle, "application/octet-stream")},
        )
    assert response.status_code == 400
