"""
Signature Image Loader.

Resolves signature image references into normalized PNG buffers for both
renderers. A reference may be an http(s) URL, a ``data:image/...;base64,``
URL, or (when explicitly allowed) a local file path.

Every failure (network, size limit, decode) is logged and turned into
``None`` so the caller leaves a blank cell instead of aborting the render.
"""

import base64
import logging
import os
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, Iterable, Mapping, Optional

import requests
from PIL import Image

import config

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:image/[a-z0-9.+-]+;base64,(.+)$", flags=re.I | re.S)


class ImageTooLargeError(ValueError):
    """Raised when an image exceeds the configured byte limit."""
    pass


@dataclass(frozen=True)
class LoadedImage:
    """A decoded image re-encoded as PNG on a white background."""
    data: bytes
    width: int
    height: int

    @property
    def aspect(self) -> float:
        return self.width / self.height if self.height else 1.0

    def data_uri(self) -> str:
        return "data:image/png;base64," + base64.b64encode(self.data).decode("ascii")

    def fit(self, max_width: float, max_height: float):
        """Largest (width, height) inside the box that keeps the aspect ratio."""
        if self.width <= 0 or self.height <= 0:
            return 0.0, 0.0
        scale = min(max_width / self.width, max_height / self.height)
        return self.width * scale, self.height * scale


class SignatureImageLoader:
    """
    Fetches and decodes signature images.

    Example:
        loader = SignatureImageLoader()
        image = loader.load("https://storage.example.com/signatures/abc.png")
    """

    def __init__(self, session: Optional[requests.Session] = None,
                 timeout: Optional[float] = None,
                 max_workers: Optional[int] = None,
                 max_bytes: Optional[int] = None,
                 allow_local_files: bool = False):
        self._injected_session = session
        self._local = threading.local()
        self.timeout = timeout if timeout is not None else config.SIGNATURE_FETCH_TIMEOUT
        self.max_workers = max(1, max_workers or config.SIGNATURE_MAX_WORKERS)
        self.max_bytes = max_bytes or config.SIGNATURE_MAX_BYTES
        self.allow_local_files = allow_local_files

    @property
    def session(self) -> requests.Session:
        """
        HTTP session for the calling thread.

        An injected session is shared by every worker and must tolerate
        concurrent use; otherwise each worker thread gets its own session.
        """
        if self._injected_session is not None:
            return self._injected_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._create_session()
            self._local.session = session
        return session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            "User-Agent": "FOR-ATA-057-Report/1.0",
            "Accept": "image/png, image/jpeg, image/*",
        })
        return session

    # -------------------------------------------------------------------------
    # Raw bytes
    # -------------------------------------------------------------------------

    def fetch_bytes(self, ref: str, allow_local: Optional[bool] = None) -> bytes:
        """
        Read the raw bytes behind a reference.

        Raises:
            requests.RequestException: For network and HTTP errors
            ImageTooLargeError: If the payload exceeds ``max_bytes``
            ValueError: For malformed data URLs or disallowed local paths
            OSError: For unreadable local files
        """
        m = _DATA_URL.match(ref)
        if m:
            raw = base64.b64decode(m.group(1), validate=False)
            self._check_size(len(raw), ref)
            return raw

        if ref.lower().startswith(("http://", "https://")):
            return self._fetch_http(ref)

        local_ok = self.allow_local_files if allow_local is None else allow_local
        if not local_ok:
            raise ValueError(f"Unsupported image reference scheme: {ref[:40]}")
        path = ref[len("file://"):] if ref.startswith("file://") else ref
        self._check_size(os.path.getsize(path), ref)
        with open(path, "rb") as f:
            return f.read()

    def _fetch_http(self, url: str) -> bytes:
        logger.debug(f"Fetching signature image {url}")
        with self.session.get(url, timeout=self.timeout, stream=True) as response:
            response.raise_for_status()
            chunks = []
            total = 0
            for chunk in response.iter_content(chunk_size=64 * 1024):
                total += len(chunk)
                self._check_size(total, url)
                chunks.append(chunk)
        return b"".join(chunks)

    def _check_size(self, size: int, ref: str):
        if size > self.max_bytes:
            raise ImageTooLargeError(f"Image exceeds {self.max_bytes} bytes: {ref[:60]}")

    # -------------------------------------------------------------------------
    # Decoding
    # -------------------------------------------------------------------------

    @staticmethod
    def decode(raw: bytes) -> LoadedImage:
        """
        Decode image bytes and flatten transparency onto white.

        Raises:
            OSError: If Pillow cannot identify or read the image
        """
        with Image.open(BytesIO(raw)) as im:
            im.load()
            if im.mode in ("RGBA", "LA") or (im.mode == "P" and "transparency" in im.info):
                rgba = im.convert("RGBA")
                flattened = Image.new("RGB", rgba.size, (255, 255, 255))
                flattened.paste(rgba, mask=rgba.split()[-1])
            else:
                flattened = im.convert("RGB")

        out = BytesIO()
        flattened.save(out, format="PNG")
        return LoadedImage(data=out.getvalue(), width=flattened.width, height=flattened.height)

    # -------------------------------------------------------------------------
    # Failure-isolated loading
    # -------------------------------------------------------------------------

    def load(self, ref: Optional[str], allow_local: Optional[bool] = None) -> Optional[LoadedImage]:
        """Load one reference; returns None (and logs) on any failure."""
        if not ref:
            return None
        try:
            return self.decode(self.fetch_bytes(ref, allow_local=allow_local))
        except requests.RequestException as e:
            logger.warning(f"Signature image unreachable ({_short(ref)}): {e}")
        except Image.DecompressionBombError as e:
            logger.warning(f"Signature image rejected ({_short(ref)}): {e}")
        except (OSError, ValueError) as e:
            logger.warning(f"Signature image could not be decoded ({_short(ref)}): {e}")
        return None

    def load_all(self, refs: Iterable[Optional[str]]) -> Dict[str, Optional[LoadedImage]]:
        """
        Load every distinct reference once, with bounded concurrency.

        All loads complete before this returns, so composition never starts
        with partially loaded images.

        Returns:
            Dictionary mapping each distinct reference to its image (or None)
        """
        distinct = list(dict.fromkeys(r for r in refs if r))
        if not distinct:
            return {}
        if len(distinct) == 1 or self.max_workers == 1:
            return {ref: self.load(ref) for ref in distinct}

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(distinct))) as pool:
            results = list(pool.map(self.load, distinct))
        return dict(zip(distinct, results))


def _short(ref: str) -> str:
    if ref.startswith("data:"):
        return ref[:30] + "..."
    return ref


# =============================================================================
# REPORT IMAGE SET
# =============================================================================

@dataclass(frozen=True)
class ReportImages:
    """Images of one report, indexed by equipment row and sign-off role."""
    equipment: Mapping[int, LoadedImage] = field(default_factory=dict)
    supervisor: Optional[LoadedImage] = None
    mechanic: Optional[LoadedImage] = None
    logo: Optional[LoadedImage] = None

    def for_row(self, index: int) -> Optional[LoadedImage]:
        return self.equipment.get(index)

    def for_role(self, role: str) -> Optional[LoadedImage]:
        return self.supervisor if role == "supervisor" else self.mechanic if role == "mechanic" else None


NO_IMAGES = ReportImages()


def load_report_images(model, layout, loader: Optional[SignatureImageLoader] = None,
                       logo_path: Optional[str] = None) -> ReportImages:
    """
    Resolve every image a report needs before composition begins.

    Equipment signatures are keyed by the layout's equipment row index; the
    two sign-off images by role. The logo comes from the model's reference,
    else from ``logo_path`` (a trusted local file, usually REPORT_LOGO_PATH).

    Args:
        model: ReportModel
        layout: MatrixLayout built from the model
        loader: Loader to use (a default one is created when omitted)
        logo_path: Local logo file used when the model carries no logo

    Returns:
        ReportImages
    """
    loader = loader or SignatureImageLoader()
    equipment_refs = {row.index: row.signature_ref for row in layout.equipment_rows if row.signature_ref}
    refs = list(equipment_refs.values()) + [
        model.supervisor.signature_image_ref,
        model.mechanic.signature_image_ref,
    ]
    loaded = loader.load_all(refs)

    logo = None
    if model.logo_ref:
        logo = loader.load(model.logo_ref)
    elif logo_path:
        logo = loader.load(logo_path, allow_local=True)

    images = ReportImages(
        equipment={idx: loaded[ref] for idx, ref in equipment_refs.items() if loaded.get(ref)},
        supervisor=loaded.get(model.supervisor.signature_image_ref or ""),
        mechanic=loaded.get(model.mechanic.signature_image_ref or ""),
        logo=logo,
    )
    missing = sum(1 for ref in set(r for r in refs if r) if loaded.get(ref) is None)
    if missing:
        logger.info(f"{missing} signature image(s) could not be loaded; rendering blank placeholders")
    return images
