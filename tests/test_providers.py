"""Tests for provider request/result types and the local and cloud providers."""

import base64

import pytest

from livevision import transport
from livevision.db.settings import set_setting
from livevision.errors import RequestBuildError, TransportError
from livevision.providers import (
    AnalysisResult,
    CaptionLength,
    CloudProvider,
    LocalServerProvider,
    OperationKind,
    ProviderRequest,
    TriggerSignal,
    get_provider,
    get_providers,
)
from livevision.providers.base import extract_json_object, normalize_confidence
from livevision.providers.prompts import GENERAL_SCENE_PROMPT, SCENE_PROMPTS

from conftest import json_response, text_response

IMAGE = b"\xff\xd8\xff\xe0fake-jpeg"
LOCAL_BASE = "http://127.0.0.1:11434"
CLOUD_BASE = "https://api.moondream.ai/v1"


def local_provider(**kwargs) -> LocalServerProvider:
    return LocalServerProvider(base_url=LOCAL_BASE, **kwargs)


def cloud_provider(**kwargs) -> CloudProvider:
    kwargs.setdefault("api_key", "test-key")
    return CloudProvider(base_url=CLOUD_BASE, **kwargs)


# Request and result types

def test_request_coerces_strings():
    request = ProviderRequest("caption", IMAGE, length="short")
    assert request.operation is OperationKind.CAPTION
    assert request.length is CaptionLength.SHORT


@pytest.mark.parametrize("operation", ["detect", "point"])
def test_request_requires_target(operation):
    with pytest.raises(ValueError):
        ProviderRequest(operation, IMAGE)


def test_request_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        ProviderRequest.query(IMAGE, timeout_ms=0)


def test_request_describe_omits_image():
    trigger = TriggerSignal(person_count=4, density=0.6, motion_intensity=0.2)
    info = ProviderRequest.detect(IMAGE, "person", trigger=trigger).describe()
    assert info["image_bytes"] == len(IMAGE)
    assert info["trigger"]["person_count"] == 4
    assert IMAGE not in info.values()


def test_scene_request_prompts():
    assert ProviderRequest.for_scene(IMAGE, "queue").prompt == SCENE_PROMPTS["queue"]
    assert ProviderRequest.for_scene(IMAGE, "parking").prompt == GENERAL_SCENE_PROMPT


def test_result_error_excludes_response():
    with pytest.raises(ValueError):
        AnalysisResult(provider="local", response="text", error="failed")
    with pytest.raises(ValueError):
        AnalysisResult(provider="local", structured_data={}, error="failed")


def test_result_confidence_range():
    with pytest.raises(ValueError):
        AnalysisResult(provider="cloud", response="ok", confidence=1.5)
    assert AnalysisResult(provider="cloud", response="ok", confidence=0.9).ok


@pytest.mark.parametrize(
    "text,expected",
    [
        ('Here you go: {"people_count": 3} thanks', {"people_count": 3}),
        ("No JSON here", None),
        ("{not json}", None),
        ("} backwards {", None),
    ],
)
def test_extract_json_object(text, expected):
    assert extract_json_object(text) == expected


def test_normalize_confidence():
    assert normalize_confidence(0.5) == 0.5
    assert normalize_confidence(7) is None
    assert normalize_confidence(True) is None
    assert normalize_confidence("0.5") is None


def test_encode_json_unserializable():
    with pytest.raises(RequestBuildError):
        transport.encode_json({"image": object()})


# Local provider

@pytest.mark.asyncio
async def test_local_query_payload_and_structured_data(backend):
    backend.route("POST", "/api/generate", json_response({"response": ' {"people_count": 2, "staff_needed": false} '}))

    result = await local_provider().query(IMAGE, "How many people?")

    assert result.ok
    assert result.provider == "local"
    assert result.structured_data == {"people_count": 2, "staff_needed": False}

    body = backend.last("POST", "/api/generate").json_body
    assert body["model"] == "llava:7b"
    assert body["prompt"] == "How many people?"
    assert body["images"] == [base64.b64encode(IMAGE).decode()]
    assert body["stream"] is False
    assert body["keep_alive"] == "5m"
    assert body["options"]["num_ctx"] == 2048


@pytest.mark.asyncio
async def test_local_query_plain_text(backend):
    backend.route("POST", "/api/generate", json_response({"response": "Two people at the counter."}))

    result = await local_provider().query(IMAGE)

    assert result.response == "Two people at the counter."
    assert result.structured_data is None


@pytest.mark.asyncio
async def test_local_error_status_is_soft(backend):
    backend.route("POST", "/api/generate", text_response("model not found", status=404))

    result = await local_provider().query(IMAGE)

    assert not result.ok
    assert "404" in result.error
    assert result.response == ""


@pytest.mark.asyncio
async def test_local_malformed_body_is_soft(backend):
    backend.route("POST", "/api/generate", text_response("<html>oops</html>"))

    result = await local_provider().query(IMAGE)

    assert result.error.startswith("Malformed response")


@pytest.mark.asyncio
async def test_local_transport_failure_propagates(backend):
    with pytest.raises(TransportError):
        await local_provider().query(IMAGE)


@pytest.mark.asyncio
async def test_local_caption_defaults_to_normal(backend):
    backend.route("POST", "/api/generate", json_response({"response": "A busy store."}))

    result = await local_provider().caption(IMAGE)

    assert result.response == "A busy store."
    assert "2-3 sentences" in backend.last("POST", "/api/generate").json_body["prompt"]


@pytest.mark.asyncio
async def test_local_detect_parses_objects(backend):
    reply = '{"objects": [{"label": "person", "confidence": 0.8, "bbox": {"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.4}}]}'
    backend.route("POST", "/api/generate", json_response({"response": reply}))

    result = await local_provider().detect(IMAGE, "person")

    assert result.structured_data["objects"][0]["label"] == "person"
    assert result.response.startswith("Detected objects: ")
    assert "person" in backend.last("POST", "/api/generate").json_body["prompt"]


@pytest.mark.asyncio
async def test_local_point_unparseable_is_soft(backend):
    backend.route("POST", "/api/generate", json_response({"response": "I can see a cart near the door."}))

    result = await local_provider().point(IMAGE, "cart")

    assert not result.ok
    assert result.structured_data is None


@pytest.mark.asyncio
async def test_timeout_override_reaches_transport(backend):
    backend.route("POST", "/api/generate", json_response({"response": "ok"}))
    request = ProviderRequest.query(IMAGE, timeout_ms=1500)

    await local_provider().run(request)

    assert backend.last("POST", "/api/generate").timeout == 1.5


# Cloud provider

@pytest.mark.asyncio
async def test_cloud_query(backend):
    backend.route("POST", "/v1/query", json_response({"answer": 'Result {"people_count": 5}', "confidence": 0.87}))

    result = await cloud_provider().query(IMAGE, "Count people")

    assert result.provider == "cloud"
    assert result.response == 'Result {"people_count": 5}'
    assert result.structured_data == {"people_count": 5}
    assert result.confidence == 0.87

    call = backend.last("POST", "/v1/query")
    assert call.headers["X-Moondream-Auth"] == "test-key"
    assert call.json_body["image_url"] == "data:image/jpeg;base64," + base64.b64encode(IMAGE).decode()
    assert call.json_body["question"] == "Count people"
    assert call.json_body["stream"] is False
    assert call.timeout == 60.0


@pytest.mark.asyncio
async def test_cloud_caption_default_length(backend):
    backend.route("POST", "/v1/caption", json_response({"caption": "A checkout line."}))

    result = await cloud_provider().caption(IMAGE)

    assert result.response == "A checkout line."
    assert backend.last("POST", "/v1/caption").json_body["length"] == "normal"


@pytest.mark.asyncio
async def test_cloud_detect_and_point(backend):
    objects = [{"x_min": 0.1, "y_min": 0.1, "x_max": 0.5, "y_max": 0.9}]
    points = [{"x": 0.3, "y": 0.5}]
    backend.route("POST", "/v1/detect", json_response({"objects": objects}))
    backend.route("POST", "/v1/point", json_response({"points": points}))

    detected = await cloud_provider().detect(IMAGE, "person")
    pointed = await cloud_provider().point(IMAGE, "person")

    assert detected.structured_data == {"objects": objects}
    assert detected.response.startswith("Detected objects: ")
    assert pointed.structured_data == {"points": points}
    assert pointed.response.startswith("Object coordinates: ")
    assert backend.last("POST", "/v1/detect").json_body["object"] == "person"


@pytest.mark.asyncio
async def test_cloud_error_status_is_soft(backend):
    backend.route("POST", "/v1/query", text_response('{"error":"unauthorized"}', status=401))

    result = await cloud_provider(api_key="").query(IMAGE)

    assert result.error.startswith("Query API error 401")
    assert result.response == ""
    assert result.structured_data is None


@pytest.mark.asyncio
async def test_cloud_malformed_body_is_soft(backend):
    backend.route("POST", "/v1/caption", text_response("not json"))

    result = await cloud_provider().caption(IMAGE)

    assert result.error.startswith("Failed to parse caption response")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "operation, path, body",
    [
        ("query", "/v1/query", {"answer": 42}),
        ("caption", "/v1/caption", {"caption": {"text": "a dog"}}),
        ("detect", "/v1/detect", {"objects": "none"}),
        ("point", "/v1/point", {"points": {"x": 0.5, "y": 0.5}}),
    ],
)
async def test_cloud_wrong_field_type_is_soft(backend, operation, path, body):
    backend.route("POST", path, json_response(body))
    provider = cloud_provider()

    if operation in ("detect", "point"):
        result = await getattr(provider, operation)(IMAGE, "person")
    else:
        result = await getattr(provider, operation)(IMAGE)

    assert result.error.startswith(f"Failed to parse {operation} response")
    assert result.response == ""
    assert result.structured_data is None


@pytest.mark.asyncio
async def test_cloud_null_fields_fall_back_to_empty(backend):
    backend.route("POST", "/v1/detect", json_response({"objects": None}))

    result = await cloud_provider().detect(IMAGE, "person")

    assert result.ok
    assert result.structured_data == {"objects": []}


# Registry

def test_registry_builds_both_providers():
    providers = get_providers()
    assert set(providers) == {"local", "cloud"}
    assert providers["local"].requires_local_server is True
    assert providers["cloud"].requires_local_server is False
    assert providers["cloud"].describe()["has_api_key"] is False


def test_registry_reads_settings_and_env(monkeypatch):
    from livevision.providers import reset_providers

    monkeypatch.setenv("MOONDREAM_API_KEY", "secret")
    set_setting("local_timeout_seconds", "12")
    set_setting("vision_model", "llama3.2-vision")
    reset_providers()

    local = get_provider("local")
    assert local.default_timeout == 12.0
    assert local.model == "llama3.2-vision"
    assert get_provider("cloud").has_api_key is True


def test_registry_unknown_provider():
    with pytest.raises(ValueError):
        get_provider("gpu-farm")
