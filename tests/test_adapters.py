import base64
import json

import cv2
import numpy as np
import pytest
import requests
from botocore.exceptions import ClientError

from ponto.domain.errors import EvidenceEncodingError, MatcherError, ProfileStoreError
from ponto.infrastructure import config
from ponto.infrastructure.backend.postgrest_client import PostgrestClient
from ponto.infrastructure.backend.profile_repositories import (
    LocalProfileRepository,
    PostgrestProfileRepository,
)
from ponto.infrastructure.extraction.insightface_extractor import InsightFaceExtractor
from ponto.infrastructure.imaging import b64_to_bgr, decode_frame_rgba, encode_jpeg
from ponto.infrastructure.matching.cosine_matcher import LocalFaceMatcher
from ponto.infrastructure.matching.postgrest_matcher import PostgrestFaceMatcher
from ponto.infrastructure.storage import s3_storage
from ponto.infrastructure.storage.local_storage import LocalEvidenceStorage
from ponto.infrastructure.storage.s3_storage import S3EvidenceStorage, is_s3_uri, parse_s3_uri
from ponto.infrastructure.video import sources
from ponto.infrastructure.video.sources import FrameSequenceSource, OpenCVVideoSource


# ---------- dobles HTTP ----------
class _DummyResponse:
    def __init__(self, status_code=200, payload=None, raw=None):
        self.status_code = status_code
        self._payload = payload
        if raw is not None:
            self.content = raw
        else:
            self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")

    def json(self):
        return json.loads(self.content)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class _DummySession:
    def __init__(self, response=None, exc=None):
        self.response = response or _DummyResponse()
        self.exc = exc
        self.calls = []

    def _send(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response

    def post(self, url, **kwargs):
        return self._send("POST", url, **kwargs)

    def patch(self, url, **kwargs):
        return self._send("PATCH", url, **kwargs)


def _client(session):
    return PostgrestClient("https://db.example.com/", api_key="anon-key", timeout=3, session=session)


# ---------- PostgREST ----------
def test_rpc_posts_json_with_auth_headers():
    session = _DummySession(_DummyResponse(payload=[{"ok": 1}]))
    data = _client(session).rpc("do_thing", {"a": 1})

    method, url, kwargs = session.calls[0]
    assert data == [{"ok": 1}]
    assert method == "POST"
    assert url == "https://db.example.com/rest/v1/rpc/do_thing"
    assert kwargs["json"] == {"a": 1}
    assert kwargs["timeout"] == 3
    assert kwargs["headers"]["apikey"] == "anon-key"
    assert kwargs["headers"]["Authorization"] == "Bearer anon-key"


def test_update_patches_by_id():
    session = _DummySession(_DummyResponse(payload=[{"id": "u1"}]))
    rows = _client(session).update("profiles", "u1", {"x": 1})

    method, url, kwargs = session.calls[0]
    assert rows == [{"id": "u1"}]
    assert method == "PATCH"
    assert url == "https://db.example.com/rest/v1/profiles"
    assert kwargs["params"] == {"id": "eq.u1"}
    assert kwargs["headers"]["Prefer"] == "return=representation"


def test_matcher_sends_descriptor_as_json_string():
    rows = [
        {"profile_id": "u1", "full_name": "Ana", "similarity_score": 0.82, "email": "ana@example.com"},
        {"profile_id": "u2", "full_name": "Bruno", "similarity_score": 0.7},
    ]
    session = _DummySession(_DummyResponse(payload=rows))

    matches = PostgrestFaceMatcher(_client(session)).query([0.5, 0.25], 0.6)

    _, url, kwargs = session.calls[0]
    assert url.endswith("/rpc/find_user_by_face_embedding")
    assert json.loads(kwargs["json"]["face_embedding"]) == [0.5, 0.25]
    assert kwargs["json"]["similarity_threshold"] == 0.6
    assert [m.profile_id for m in matches] == ["u1", "u2"]
    assert matches[0].full_name == "Ana"
    assert matches[0].similarity_score == pytest.approx(0.82)
    assert matches[1].email is None


@pytest.mark.parametrize("response", [_DummyResponse(payload=[]), _DummyResponse(payload=None)])
def test_matcher_empty_result(response):
    assert PostgrestFaceMatcher(_client(_DummySession(response))).query([0.1], 0.6) == []


@pytest.mark.parametrize(
    "session",
    [
        _DummySession(_DummyResponse(status_code=500, payload={"message": "boom"})),
        _DummySession(exc=requests.ConnectionError("refused")),
        _DummySession(_DummyResponse(raw=b"<html>")),
        _DummySession(_DummyResponse(payload={"profile_id": "u1"})),
        _DummySession(_DummyResponse(payload=[{"full_name": "sin id"}])),
    ],
)
def test_matcher_failures_raise_matcher_error(session):
    with pytest.raises(MatcherError):
        PostgrestFaceMatcher(_client(session)).query([0.1], 0.6)


def test_remote_profile_save():
    session = _DummySession(_DummyResponse(payload=[{"id": "u1"}]))
    PostgrestProfileRepository(_client(session)).save_face_descriptor("u1", "[0.1]", "registered")

    _, _, kwargs = session.calls[0]
    assert kwargs["json"] == {"face_embedding": "[0.1]", "facial_reference_url": "registered"}


@pytest.mark.parametrize(
    "session",
    [
        _DummySession(_DummyResponse(payload=[])),
        _DummySession(_DummyResponse(status_code=401, payload={"message": "jwt"})),
        _DummySession(exc=requests.Timeout("slow")),
    ],
)
def test_remote_profile_save_failures(session):
    with pytest.raises(ProfileStoreError):
        PostgrestProfileRepository(_client(session)).save_face_descriptor("ghost", "[0.1]", "registered")


# ---------- perfiles locales + matcher coseno ----------
def test_local_profiles_roundtrip(tmp_path):
    repo = LocalProfileRepository(str(tmp_path / "profiles.json"))
    repo.upsert_profile("u1", "Ana", "ana@example.com")
    repo.upsert_profile("u2", "Bruno")

    repo.save_face_descriptor("u1", json.dumps([1.0, 0.0]), "registered")

    stored = repo.list_face_descriptors()
    assert [p.id for p in stored] == ["u1"]
    assert stored[0].descriptor == [1.0, 0.0]
    assert stored[0].email == "ana@example.com"


def test_local_profiles_unknown_user(tmp_path):
    repo = LocalProfileRepository(str(tmp_path / "profiles.json"))
    with pytest.raises(ProfileStoreError):
        repo.save_face_descriptor("ghost", "[1.0]", "registered")


def test_local_profiles_corrupt_file(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text("{oops", encoding="utf-8")
    with pytest.raises(ProfileStoreError):
        LocalProfileRepository(str(path)).list_face_descriptors()


def test_cosine_matcher_orders_and_filters(tmp_path):
    repo = LocalProfileRepository(str(tmp_path / "profiles.json"))
    for pid, name, vec in [
        ("u1", "Ana", [1.0, 0.0, 0.0]),
        ("u2", "Bruno", [0.8, 0.6, 0.0]),
        ("u3", "Carla", [0.0, 0.0, 1.0]),
        ("u4", "Dani", [1.0, 0.0]),  # otra dimensión, se ignora
    ]:
        repo.upsert_profile(pid, name)
        repo.save_face_descriptor(pid, json.dumps(vec), "registered")

    matches = LocalFaceMatcher(repo).query([2.0, 0.0, 0.0], 0.5)

    assert [m.profile_id for m in matches] == ["u1", "u2"]
    assert matches[0].similarity_score == pytest.approx(1.0, abs=1e-5)
    assert matches[1].similarity_score == pytest.approx(0.8, abs=1e-5)


def test_cosine_matcher_wraps_store_errors(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(MatcherError):
        LocalFaceMatcher(LocalProfileRepository(str(path))).query([1.0, 0.0], 0.1)


def test_cosine_matcher_without_profiles(tmp_path):
    repo = LocalProfileRepository(str(tmp_path / "missing.json"))
    assert LocalFaceMatcher(repo).query([1.0, 0.0], 0.1) == []


# ---------- almacenamiento ----------
class _DummyS3:
    def __init__(self, exc=None):
        self.exc = exc
        self.puts = []

    def put_object(self, **kwargs):
        if self.exc is not None:
            raise self.exc
        self.puts.append(kwargs)

    def generate_presigned_url(self, op, Params, ExpiresIn):
        return f"https://signed/{Params['Bucket']}/{Params['Key']}?ttl={ExpiresIn}&op={op}"


@pytest.mark.parametrize(
    "uri,expected",
    [
        ("s3://evidencias/ponto/", ("evidencias", "ponto/")),
        ("s3://evidencias", ("evidencias", "")),
        ("https://evidencias.s3.us-east-1.amazonaws.com/ponto/audit", ("evidencias", "ponto/audit")),
        ("https://s3.sa-east-1.amazonaws.com/evidencias/ponto", ("evidencias", "ponto")),
    ],
)
def test_parse_s3_uri(uri, expected):
    assert is_s3_uri(uri)
    assert parse_s3_uri(uri) == expected


def test_parse_s3_uri_rejects_other_urls():
    assert not is_s3_uri("./facial_audit/evidence")
    with pytest.raises(ValueError):
        parse_s3_uri("https://example.com/bucket")


def test_s3_upload_and_sign_use_prefix():
    client = _DummyS3()
    storage = S3EvidenceStorage.from_uri("s3://evidencias/ponto/", client=client)

    assert storage.upload("audit/u1/1.jpg", b"img") is True
    assert client.puts[0]["Bucket"] == "evidencias"
    assert client.puts[0]["Key"] == "ponto/audit/u1/1.jpg"
    assert client.puts[0]["ContentType"] == "image/jpeg"
    assert client.puts[0]["IfNoneMatch"] == "*"
    assert storage.signed_url("audit/u1/1.jpg", 60) == \
        "https://signed/evidencias/ponto/audit/u1/1.jpg?ttl=60&op=get_object"


def test_s3_refuses_to_overwrite_existing_key():
    err = ClientError({"Error": {"Code": "PreconditionFailed", "Message": "At least one of the pre-conditions you specified did not hold"}}, "PutObject")
    storage = S3EvidenceStorage("evidencias", client=_DummyS3(exc=err))
    assert storage.upload("audit/u1/1.jpg", b"second") is False


def test_s3_upload_error_returns_false():
    err = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
    storage = S3EvidenceStorage("evidencias", client=_DummyS3(exc=err))
    assert storage.upload("audit/u1/1.jpg", b"img") is False


def test_local_storage_rejects_escaping_keys(tmp_path):
    storage = LocalEvidenceStorage(str(tmp_path / "ev"))
    assert storage.upload("../outside.jpg", b"x") is False
    assert not (tmp_path / "outside.jpg").exists()
    assert storage.signed_url("../outside.jpg") is None


# ---------- video ----------
def test_frame_sequence_source_runs_out():
    src = FrameSequenceSource([np.zeros((2, 2, 4), np.uint8)])
    assert src.read_frame() is not None
    assert src.read_frame() is None


class _DummyCapture:
    def __init__(self, device):
        self.device = device
        self.props = {}
        self.released = False
        self.frames = [np.full((4, 4, 3), (255, 0, 0), np.uint8)]

    def set(self, prop, value):
        self.props[prop] = value

    def isOpened(self):
        return not self.released

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self):
        self.released = True


def test_opencv_source_converts_to_rgba(monkeypatch):
    monkeypatch.setattr(sources.cv2, "VideoCapture", _DummyCapture)

    with OpenCVVideoSource(device=1, width=320, height=240) as src:
        frame = src.read_frame()
        assert frame.shape == (4, 4, 4)
        assert tuple(frame[0, 0]) == (0, 0, 255, 255)  # BGR azul -> RGBA
        assert src.read_frame() is None
        cap = src.cap

    assert cap.released is True
    assert cap.props[cv2.CAP_PROP_FRAME_WIDTH] == 320


# ---------- imágenes ----------
def test_encode_jpeg_and_decode_b64():
    img = np.full((16, 16, 3), 200, np.uint8)
    blob = encode_jpeg(img, quality=80)
    assert blob[:2] == b"\xff\xd8"

    data_url = "data:image/jpeg;base64," + base64.b64encode(blob).decode("ascii")
    decoded = b64_to_bgr(data_url)
    assert decoded.shape == (16, 16, 3)


def test_encode_jpeg_rejects_empty():
    with pytest.raises(EvidenceEncodingError):
        encode_jpeg(np.zeros((0, 0, 3), np.uint8))


def test_b64_to_bgr_rejects_garbage():
    with pytest.raises(ValueError):
        b64_to_bgr(base64.b64encode(b"not an image").decode("ascii"))


def test_decode_frame_rgba():
    ok, png = cv2.imencode(".png", np.zeros((5, 7, 3), np.uint8))
    assert decode_frame_rgba(png.tobytes()).shape == (5, 7, 4)
    assert decode_frame_rgba(b"garbage") is None


# ---------- extractor ----------
class _DummyFace:
    def __init__(self, bbox, emb):
        self.bbox = np.array(bbox, dtype=np.float32)
        self.normed_embedding = np.array(emb, dtype=np.float32)


class _DummyAnalysis:
    def __init__(self, faces):
        self.faces = faces

    def get(self, img):
        return self.faces


def test_extractor_requires_load():
    extractor = InsightFaceExtractor(root="/tmp/insightface-test")
    assert extractor.is_ready is False
    with pytest.raises(RuntimeError):
        extractor.extract(np.zeros((4, 4, 3), np.uint8))


def test_extractor_picks_largest_face():
    extractor = InsightFaceExtractor(root="/tmp/insightface-test")
    extractor._app = _DummyAnalysis([
        _DummyFace([0, 0, 10, 10], [1.0, 0.0]),
        _DummyFace([0, 0, 50, 40], [0.0, 1.0]),
    ])

    assert extractor.is_ready is True
    assert extractor.extract(np.zeros((64, 64, 3), np.uint8)) == [0.0, 1.0]


def test_extractor_without_faces():
    extractor = InsightFaceExtractor(root="/tmp/insightface-test")
    extractor._app = _DummyAnalysis([])
    assert extractor.extract(np.zeros((64, 64, 3), np.uint8)) is None


# ---------- config ----------
def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("FACE_SIMILARITY_TH", "0.72")
    monkeypatch.setenv("FACE_RESORT_MATCHES", "true")
    monkeypatch.setenv("LIVENESS_NUM_FRAMES", "6")
    monkeypatch.setenv("LIVENESS_REQUIRED", "0")

    settings = config.get_recognition_settings()
    liveness = config.get_liveness_config()

    assert settings.similarity_threshold == 0.72
    assert settings.resort_matches is True
    assert settings.evidence_quality_no_face == 80
    assert liveness.num_frames == 6
    assert liveness.liveness_required is False
    assert liveness.frame_interval_ms == 800


def test_local_wiring_by_default(monkeypatch, tmp_path):
    monkeypatch.delenv("BACKEND_URL", raising=False)
    monkeypatch.setenv("EVIDENCE_URI", str(tmp_path / "ev"))
    monkeypatch.setenv("AUDIT_DIR", str(tmp_path / "rec"))
    monkeypatch.setenv("PROFILES_PATH", str(tmp_path / "profiles.json"))

    caps = config.build_capabilities()

    assert isinstance(caps.matcher, LocalFaceMatcher)
    assert isinstance(caps.profiles, LocalProfileRepository)
    assert isinstance(caps.audit.storage, LocalEvidenceStorage)
    assert caps.extractor.is_ready is False


def test_backend_and_s3_wiring(monkeypatch, tmp_path):
    monkeypatch.setenv("BACKEND_URL", "https://db.example.com")
    monkeypatch.setenv("EVIDENCE_URI", "s3://evidencias/ponto")
    monkeypatch.setenv("AUDIT_DIR", str(tmp_path / "rec"))
    monkeypatch.setattr(s3_storage.boto3, "client", lambda *a, **kw: _DummyS3())

    caps = config.build_capabilities()

    assert isinstance(caps.matcher, PostgrestFaceMatcher)
    assert isinstance(caps.profiles, PostgrestProfileRepository)
    assert isinstance(caps.audit.storage, S3EvidenceStorage)
    assert caps.audit.storage.prefix == "ponto"
