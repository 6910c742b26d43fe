# healthpass/qr.py
"""
QR image rendering (qrcode + Pillow) and reading (OpenCV).

ScannerSession owns the camera for the length of a scan: start() acquires it,
frames() yields decoded text until the session is stopped, stop() releases it.
Use it as a context manager so the camera is always released.
"""
import base64
import logging
from io import BytesIO
from typing import Callable, Iterator, List, Optional

import cv2
import numpy as np
import qrcode
from PIL import Image, UnidentifiedImageError

from healthpass import codec, config
from healthpass.errors import MalformedPayload, ScannerError
from healthpass.schemas import SharePayload

logger = logging.getLogger(__name__)

DOWNLOAD_FILENAME = "health-qr-code.png"


def render_png(text: str, box_size: Optional[int] = None, border: Optional[int] = None) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=box_size or config.QR_BOX_SIZE,
        border=config.QR_BORDER if border is None else border,
    )
    qr.add_data(text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_data_url(text: str) -> str:
    b64 = base64.b64encode(render_png(text)).decode("ascii")
    return f"data:image/png;base64,{b64}"


def _decode_frame(detector, frame) -> List[str]:
    text, points, _ = detector.detectAndDecode(frame)
    if text:
        return [text]
    ok, texts, points, _ = detector.detectAndDecodeMulti(frame)
    if not ok:
        return []
    return [t for t in texts if t]


def decode_image(image_bytes: bytes) -> List[str]:
    """Return every QR text found in an uploaded image (possibly none)."""
    try:
        img = Image.open(BytesIO(image_bytes)).convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise MalformedPayload("upload is not a readable image") from e
    frame = cv2.cvtColor(np.array(img), cv2.COLOR_RGB2BGR)
    return _decode_frame(cv2.QRCodeDetector(), frame)


class ScannerSession:
    def __init__(self, camera_index: Optional[int] = None,
                 capture_factory: Callable = cv2.VideoCapture, detector=None):
        self.camera_index = config.SCANNER_CAMERA_INDEX if camera_index is None else camera_index
        self._capture_factory = capture_factory
        self._detector = detector or cv2.QRCodeDetector()
        self._capture = None

    @property
    def is_scanning(self) -> bool:
        return self._capture is not None

    def start(self):
        if self.is_scanning:
            return
        capture = self._capture_factory(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise ScannerError(f"could not open camera {self.camera_index}")
        self._capture = capture
        logger.info("scanner started on camera %s", self.camera_index)

    def stop(self):
        if self._capture is None:
            return
        capture, self._capture = self._capture, None
        capture.release()
        logger.info("scanner stopped")

    def frames(self) -> Iterator[str]:
        while self.is_scanning:
            ok, frame = self._capture.read()
            if not ok:
                self.stop()
                raise ScannerError("camera stopped delivering frames")
            for text in _decode_frame(self._detector, frame):
                yield text
                if not self.is_scanning:
                    return

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False


def scan_until_valid(session: ScannerSession, decode: Callable[[str], SharePayload] = codec.decode) -> Optional[SharePayload]:
    """Keep reading until a code parses as a share payload, then stop the camera."""
    for text in session.frames():
        try:
            payload = decode(text)
        except MalformedPayload as e:
            logger.info("ignoring unreadable QR code: %s", e.message)
            continue
        session.stop()
        return payload
    return None
