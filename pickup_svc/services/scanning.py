from __future__ import annotations
import cv2
import numpy as np


class ScanUnavailable(Exception):
    pass


class ScanInput:
    """Where a scanned credential string comes from. One variant is chosen at startup."""

    name = "base"
    accepts_images = False

    def read_text(self, text: str) -> str:
        return text.strip()

    def read_image(self, image: bytes) -> str:
        raise ScanUnavailable("Camera scanning is not available. Enter the code manually.")

class TextScanInput(ScanInput):
    name = "text"

class CameraScanInput(ScanInput):
    name = "camera"
    accepts_images = True

    def __init__(self):
        self._detector = cv2.QRCodeDetector()

    def read_image(self, image: bytes) -> str:
        buf = np.frombuffer(image, dtype=np.uint8)
        frame = cv2.imdecode(buf, cv2.IMREAD_COLOR)
        if frame is None:
            raise ValueError("could not decode image")
        data, _points, _ = self._detector.detectAndDecode(frame)
        if not data:
            raise ValueError("no QR code found in image")
        return data.strip()


def select_scan_input(mode: str) -> ScanInput:
    if mode == "camera":
        return CameraScanInput()
    if mode == "text":
        return TextScanInput()
    raise ValueError(f"unknown scan input mode: {mode!r}")
