"""Tests for the HTTP endpoints, with the Gemini gateway replaced by a fake."""
import base64

import pytest
from fastapi.testclient import TestClient
from google.genai import types

from health_assistant.errors import UpstreamError
from health_assistant.gemini_client import get_gateway_factory
from health_assistant.main import (
    ANALYZE_FAILED,
    CHAT_FAILED,
    TTS_FAILED,
    TTS_UNAVAILABLE,
    app,
)

IMAGE = {"mimeType": "image/png", "base64": base64.b64encode(b"png-bytes").decode("ascii")}
PDF = {"base64": base64.b64encode(b"%PDF-1.4").decode("ascii")}


def _text_response(text: str) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=[types.Part(text=text)]))]
    )


def _audio_response(data: bytes) -> types.GenerateContentResponse:
    part = types.Part(inline_data=types.Blob(data=data, mime_type="audio/L16;rate=24000"))
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=[part]))]
    )


class FakeGateway:
    """Records calls and returns a canned response or raises."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.factory_args = None

    async def generate(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("GEMINI_MODEL", raising=False)
    monkeypatch.delenv("GEMINI_TTS_MODEL", raising=False)
    monkeypatch.delenv("GEMINI_TTS_VOICE", raising=False)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def use_gateway(gateway: FakeGateway) -> FakeGateway:
    def factory(api_key, timeout_seconds):
        gateway.factory_args = (api_key, timeout_seconds)
        return gateway

    app.dependency_overrides[get_gateway_factory] = lambda: factory
    return gateway


class TestAnalyze:

    def test_missing_mode(self, client):
        gateway = use_gateway(FakeGateway())
        response = client.post("/api/analyze", json={"images": [IMAGE]})
        assert response.status_code == 400
        assert "error" in response.json()
        assert gateway.calls == []

    def test_no_images_or_pdf(self, client):
        response = client.post("/api/analyze", json={"mode": "report", "images": []})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_malformed_body(self, client):
        response = client.post(
            "/api/analyze", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    def test_non_object_body(self, client):
        response = client.post("/api/analyze", json=["report"])
        assert response.status_code == 400

    def test_numeric_mode_rejected(self, client):
        gateway = use_gateway(FakeGateway())
        response = client.post("/api/analyze", json={"mode": 1, "images": [IMAGE]})
        assert response.status_code == 400
        assert gateway.calls == []

    def test_unpadded_base64_image(self, client):
        gateway = use_gateway(FakeGateway(_text_response('{"name": "饼干"}')))
        response = client.post("/api/analyze", json={
            "mode": "food",
            "images": [{"mimeType": "image/png", "base64": "aGVsbG8"}],
        })
        assert response.status_code == 200
        assert gateway.calls[0]["contents"][0].parts[0].inline_data.data == b"hello"

    def test_nan_in_reply(self, client):
        use_gateway(FakeGateway(_text_response('{"name": NaN}')))
        response = client.post("/api/analyze", json={"mode": "medicine", "images": [IMAGE]})
        assert response.status_code == 500
        assert response.json()["error"] == ANALYZE_FAILED
        assert "NaN" in response.json()["details"]

    def test_success(self, client):
        reply = '```json\n{"name": "阿司匹林", "summary": "饭后吃"}\n```'
        gateway = use_gateway(FakeGateway(_text_response(reply)))

        response = client.post("/api/analyze", json={"mode": "medicine", "images": [IMAGE]})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": {"name": "阿司匹林", "summary": "饭后吃"},
        }
        call = gateway.calls[0]
        assert call["model"] == "gemini-2.5-flash"
        assert call["config"].temperature == 0.3
        assert "药剂师" in call["config"].system_instruction
        assert gateway.factory_args[0] == "test-key"

    def test_parts_order(self, client):
        gateway = use_gateway(FakeGateway(_text_response('{"ok": true}')))
        client.post("/api/analyze", json={"mode": "report", "images": [IMAGE, {"base64": IMAGE["base64"]}], "pdfData": PDF})

        parts = gateway.calls[0]["contents"][0].parts
        assert [p.inline_data.mime_type for p in parts[:3]] == ["image/png", "image/jpeg", "application/pdf"]
        assert parts[3].text

    def test_pdf_only(self, client):
        use_gateway(FakeGateway(_text_response('{"exam_date": "2024-05-01"}')))
        response = client.post("/api/analyze", json={"mode": "report", "pdfData": PDF})
        assert response.status_code == 200
        assert response.json()["data"] == {"exam_date": "2024-05-01"}

    def test_unknown_mode_still_calls_model(self, client):
        gateway = use_gateway(FakeGateway(_text_response('{"anything": 1}')))
        response = client.post("/api/analyze", json={"mode": "xray", "images": [IMAGE]})
        assert response.status_code == 200
        assert response.json()["data"] == {"anything": 1}
        assert gateway.calls[0]["config"].system_instruction is None

    def test_unparseable_reply(self, client):
        use_gateway(FakeGateway(_text_response("抱歉，我看不清这张图片")))
        response = client.post("/api/analyze", json={"mode": "food", "images": [IMAGE]})
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == ANALYZE_FAILED
        assert "JSON" in body["details"]

    def test_upstream_failure_includes_details(self, client):
        use_gateway(FakeGateway(error=UpstreamError("Gemini request failed: 503")))
        response = client.post("/api/analyze", json={"mode": "food", "images": [IMAGE]})
        assert response.status_code == 500
        assert response.json() == {"error": ANALYZE_FAILED, "details": "Gemini request failed: 503"}

    def test_invalid_base64(self, client):
        gateway = use_gateway(FakeGateway(_text_response("{}")))
        response = client.post("/api/analyze", json={"mode": "food", "images": [{"base64": "%%%"}]})
        assert response.status_code == 500
        assert "base64" in response.json()["details"]
        assert gateway.calls == []

    def test_missing_api_key(self, client, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY")
        response = client.post("/api/analyze", json={"mode": "food", "images": [IMAGE]})
        assert response.status_code == 500
        assert "GEMINI_API_KEY" in response.json()["details"]


class TestTTS:

    def test_missing_text(self, client):
        response = client.post("/api/tts", json={})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_empty_text(self, client):
        response = client.post("/api/tts", json={"text": ""})
        assert response.status_code == 400

    def test_success(self, client):
        gateway = use_gateway(FakeGateway(_audio_response(b"\x01\x02")))
        response = client.post("/api/tts", json={"text": "早上好"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "audio": base64.b64encode(b"\x01\x02").decode("ascii")}
        call = gateway.calls[0]
        assert call["model"] == "gemini-2.5-flash-preview-tts"
        assert call["config"].response_modalities == ["AUDIO"]
        assert call["config"].speech_config.voice_config.prebuilt_voice_config.voice_name == "Kore"
        assert call["contents"][0].parts[0].text == "请朗读：早上好"

    def test_missing_audio_vs_transport_error(self, client):
        use_gateway(FakeGateway(_text_response("I can only reply in text")))
        missing = client.post("/api/tts", json={"text": "你好"})

        use_gateway(FakeGateway(error=UpstreamError("connection reset")))
        transport = client.post("/api/tts", json={"text": "你好"})

        assert missing.status_code == 500
        assert transport.status_code == 500
        assert missing.json() == {"error": TTS_FAILED}
        assert transport.json() == {"error": TTS_UNAVAILABLE}
        assert TTS_FAILED != TTS_UNAVAILABLE


class TestChat:

    def test_missing_message(self, client):
        response = client.post("/api/chat", json={"history": []})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_history_order(self, client):
        gateway = use_gateway(FakeGateway(_text_response("好的")))
        response = client.post("/api/chat", json={
            "message": "C",
            "history": [{"role": "user", "text": "A"}, {"role": "model", "text": "B"}],
        })

        assert response.status_code == 200
        assert response.json() == {"success": True, "reply": "好的"}
        contents = gateway.calls[0]["contents"]
        assert [(c.role, c.parts[0].text) for c in contents] == [
            ("user", "A"),
            ("model", "B"),
            ("user", "C"),
        ]

    def test_context_in_instruction(self, client):
        gateway = use_gateway(FakeGateway(_text_response("ok")))
        client.post("/api/chat", json={
            "message": "能空腹吃吗？",
            "contextType": "药品",
            "contextItem": "阿司匹林",
            "contextContent": "每日一次",
        })
        config = gateway.calls[0]["config"]
        assert "阿司匹林" in config.system_instruction
        assert config.temperature == 0.7

    def test_empty_reply(self, client):
        use_gateway(FakeGateway(types.GenerateContentResponse(candidates=[])))
        response = client.post("/api/chat", json={"message": "hi"})
        assert response.status_code == 200
        assert response.json()["reply"] == ""

    def test_failure_has_no_details(self, client):
        use_gateway(FakeGateway(error=UpstreamError("secret upstream detail")))
        response = client.post("/api/chat", json={"message": "hi"})
        assert response.status_code == 500
        assert response.json() == {"error": CHAT_FAILED}


class TestHealth:

    def test_reports_key_presence(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "hasApiKey": True}
        assert "test-key" not in response.text

    def test_without_key(self, client, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY")
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "hasApiKey": False}


class TestMiddleware:

    def test_request_id_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_request_id_generated(self, client):
        response = client.get("/api/health")
        assert response.headers["X-Request-ID"]

    def test_body_too_large(self, client, monkeypatch):
        monkeypatch.setenv("MAX_BODY_BYTES", "16")
        response = client.post("/api/tts", json={"text": "x" * 100})
        assert response.status_code == 413
        assert "error" in response.json()

    def test_chunked_body_too_large(self, client, monkeypatch):
        monkeypatch.setenv("MAX_BODY_BYTES", "16")
        gateway = use_gateway(FakeGateway(_audio_response(b"\x01")))
        body = iter([b'{"text": "', b"x" * 100, b'"}'])
        response = client.post("/api/tts", content=body, headers={"Content-Type": "application/json"})
        assert response.status_code == 413
        assert "error" in response.json()
        assert gateway.calls == []


class TestStartup:

    def test_malformed_port_fails_at_startup(self, monkeypatch):
        monkeypatch.setenv("PORT", "eighty")
        with pytest.raises(ValueError, match="PORT"):
            with TestClient(app):
                pass

    def test_malformed_body_limit_fails_at_startup(self, monkeypatch):
        monkeypatch.setenv("MAX_BODY_BYTES", "50MB")
        with pytest.raises(ValueError, match="MAX_BODY_BYTES"):
            with TestClient(app):
                pass


class TestFrontend:

    def test_index_fallback(self, client, monkeypatch, tmp_path):
        (tmp_path / "index.html").write_text("<html>app</html>")
        (tmp_path / "app.js").write_text("console.log(1)")
        monkeypatch.setenv("STATIC_DIR", str(tmp_path))

        assert client.get("/").text == "<html>app</html>"
        assert client.get("/reports/42").text == "<html>app</html>"
        assert client.get("/app.js").text == "console.log(1)"

    def test_no_escape_from_static_dir(self, client, monkeypatch, tmp_path):
        static_dir = tmp_path / "public"
        static_dir.mkdir()
        (static_dir / "index.html").write_text("index")
        (tmp_path / "secret.txt").write_text("secret")
        monkeypatch.setenv("STATIC_DIR", str(static_dir))

        assert client.get("/..%2Fsecret.txt").text == "index"

    def test_missing_build(self, client, monkeypatch, tmp_path):
        monkeypatch.setenv("STATIC_DIR", str(tmp_path / "missing"))
        assert client.get("/").status_code == 404

    def test_unknown_api_path_not_served_index(self, client, monkeypatch, tmp_path):
        (tmp_path / "index.html").write_text("index")
        monkeypatch.setenv("STATIC_DIR", str(tmp_path))
        response = client.get("/api/unknown")
        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}
