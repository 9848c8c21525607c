import base64
import io
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests
from PIL import Image

from conftest import make_png, to_data_url
from matrix_layout import build_layout
from report_model import build_report_model
from signature_loader import LoadedImage, SignatureImageLoader, load_report_images


class FakeResponse:
    def __init__(self, content: bytes, status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]


class FakeSession:
    """Maps URL -> FakeResponse or exception; records every request."""

    def __init__(self, responses: dict):
        self.responses = responses
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, timeout=None, stream=False):
        with self._lock:
            self.calls.append(url)
        result = self.responses[url]
        if isinstance(result, Exception):
            raise result
        return result


def _loader(responses=None, **kwargs) -> SignatureImageLoader:
    return SignatureImageLoader(session=FakeSession(responses or {}), **kwargs)


# =============================================================================
# SINGLE LOADS
# =============================================================================

def test_data_url_is_decoded_to_png(png_data_url) -> None:
    image = _loader().load(png_data_url)
    assert isinstance(image, LoadedImage)
    assert (image.width, image.height) == (40, 20)
    assert image.data.startswith(b"\x89PNG")
    assert image.data_uri().startswith("data:image/png;base64,")


def test_transparency_is_flattened_onto_white() -> None:
    clear = make_png(color=(0, 0, 0, 0))
    image = _loader().load(to_data_url(clear))
    with Image.open(io.BytesIO(image.data)) as im:
        assert im.mode == "RGB"
        assert im.getpixel((5, 5)) == (255, 255, 255)


def test_http_image_is_fetched(png_bytes) -> None:
    loader = _loader({"https://cdn.example.com/sig.png": FakeResponse(png_bytes)})
    image = loader.load("https://cdn.example.com/sig.png")
    assert image is not None
    assert image.width == 40


def test_network_failure_degrades_to_none(caplog) -> None:
    loader = _loader({"https://cdn.example.com/down.png": requests.ConnectionError("refused")})
    with caplog.at_level(logging.WARNING, logger="signature_loader"):
        assert loader.load("https://cdn.example.com/down.png") is None
    assert "unreachable" in caplog.text


def test_http_error_status_degrades_to_none() -> None:
    loader = _loader({"https://cdn.example.com/missing.png": FakeResponse(b"", status_code=404)})
    assert loader.load("https://cdn.example.com/missing.png") is None


def test_undecodable_payload_degrades_to_none(caplog) -> None:
    garbage = "data:image/png;base64," + base64.b64encode(b"not an image").decode("ascii")
    with caplog.at_level(logging.WARNING, logger="signature_loader"):
        assert _loader().load(garbage) is None
    assert "could not be decoded" in caplog.text


def test_size_limit_is_enforced(png_bytes) -> None:
    loader = _loader({"https://cdn.example.com/big.png": FakeResponse(png_bytes)}, max_bytes=10)
    assert loader.load("https://cdn.example.com/big.png") is None
    assert loader.load(to_data_url(png_bytes)) is None


def test_local_files_need_explicit_permission(tmp_path, png_bytes) -> None:
    path = tmp_path / "firma.png"
    path.write_bytes(png_bytes)

    assert _loader().load(str(path)) is None
    assert _loader().load(str(path), allow_local=True) is not None
    assert _loader(allow_local_files=True).load(f"file://{path}") is not None


def test_missing_reference_is_none() -> None:
    assert _loader().load(None) is None
    assert _loader().load("") is None


def test_fit_keeps_aspect_ratio() -> None:
    image = LoadedImage(data=b"", width=200, height=100)
    assert image.fit(50, 50) == (50, 25)
    assert image.fit(400, 20) == (40, 20)


# =============================================================================
# BATCH LOADS
# =============================================================================

def test_load_all_fetches_each_distinct_reference_once(png_bytes) -> None:
    responses = {
        "https://cdn.example.com/a.png": FakeResponse(png_bytes),
        "https://cdn.example.com/b.png": FakeResponse(png_bytes),
        "https://cdn.example.com/c.png": requests.Timeout("slow"),
    }
    loader = _loader(responses, max_workers=3)
    refs = [
        "https://cdn.example.com/a.png",
        "https://cdn.example.com/b.png",
        "https://cdn.example.com/a.png",
        None,
        "https://cdn.example.com/c.png",
    ]
    loaded = loader.load_all(refs)

    assert sorted(loader.session.calls) == sorted(responses)
    assert loaded["https://cdn.example.com/a.png"] is not None
    assert loaded["https://cdn.example.com/b.png"] is not None
    assert loaded["https://cdn.example.com/c.png"] is None


def test_report_images_are_indexed_by_row_and_role(sample_inspection, png_bytes) -> None:
    broken = "https://cdn.example.com/broken.png"
    sample_inspection["equipment"][1]["inspector_signature_url"] = broken
    sample_inspection["mechanic_signature_url"] = broken
    model = build_report_model(sample_inspection)
    layout = build_layout(model)
    loader = _loader({broken: requests.ConnectionError("refused")})

    images = load_report_images(model, layout, loader)

    assert images.for_row(0) is not None
    assert images.for_row(1) is None
    assert images.for_row(5) is None
    assert images.for_role("supervisor") is not None
    assert images.for_role("mechanic") is None
    assert images.logo is None
    assert loader.session.calls == [broken]


def test_logo_is_loaded_from_trusted_local_path(sample_inspection, tmp_path, png_bytes) -> None:
    logo = tmp_path / "logo.png"
    logo.write_bytes(png_bytes)
    model = build_report_model(sample_inspection)
    images = load_report_images(model, build_layout(model), _loader(), logo_path=str(logo))
    assert images.logo is not None


def test_default_loader_uses_one_session_per_thread() -> None:
    loader = SignatureImageLoader()
    main = loader.session
    assert loader.session is main
    with ThreadPoolExecutor(max_workers=1) as pool:
        worker = pool.submit(lambda: loader.session).result()
    assert worker is not main
    assert isinstance(worker, requests.Session)


def test_injected_session_is_shared_by_workers() -> None:
    loader = _loader()
    with ThreadPoolExecutor(max_workers=1) as pool:
        worker = pool.submit(lambda: loader.session).result()
    assert worker is loader.session
