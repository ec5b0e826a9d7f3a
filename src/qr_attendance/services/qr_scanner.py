from __future__ import annotations

import logging
import threading
import time
import unicodedata
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

SCAN_INTERVAL_SECONDS = 0.08
DEFAULT_COOLDOWN_SECONDS = 2.0
PREVIEW_INTERVAL_SECONDS = 0.07


class ScannerUnavailableError(RuntimeError):
    """Raised when the QR detection backend cannot be loaded."""


class FrameSource(Protocol):
    @property
    def is_streaming(self) -> bool: ...

    def read_frame(self) -> tuple[bool, Any]: ...


class Detector(Protocol):
    def detect(self, frame: Any) -> list[str]: ...


def _decode_symbol_data(raw: bytes | str) -> str:
    if not raw:
        return ""

    if isinstance(raw, str):
        decoded = raw
    else:
        try:
            decoded = raw.decode("utf-8")
        except UnicodeDecodeError:
            decoded = raw.decode("utf-8", errors="ignore")

    normalized = unicodedata.normalize("NFC", decoded)
    return normalized.strip()


def frame_dimensions(frame: Any) -> tuple[int, int]:
    """(height, width) of an OpenCV array or PIL image; zeros when unknown."""

    shape = getattr(frame, "shape", None)
    if shape is not None and len(shape) >= 2:
        return int(shape[0]), int(shape[1])
    size = getattr(frame, "size", None)
    if isinstance(size, tuple) and len(size) == 2:
        return int(size[1]), int(size[0])
    return 0, 0


class ZXingDetector:
    """QR detection backed by zxing-cpp."""

    def __init__(self) -> None:
        try:
            import zxingcpp  # type: ignore[import-not-found]
        except ImportError as exc:
            raise ScannerUnavailableError(
                "Missing QR scanner dependencies. Install zxing-cpp to enable scanning."
            ) from exc
        self._zxing = zxingcpp

    def detect(self, frame: Any) -> list[str]:
        decoded = self._zxing.read_barcodes(
            frame,
            formats=self._zxing.BarcodeFormat.QRCode,
            try_rotate=True,
            try_downscale=True,
            text_mode=self._zxing.TextMode.HRI,
        )

        payloads: list[str] = []
        for obj in decoded:
            if hasattr(obj, "valid") and not obj.valid:
                continue
            if getattr(obj, "error", None):
                continue

            payload = _decode_symbol_data(getattr(obj, "text", ""))
            if not payload:
                payload_bytes = getattr(obj, "bytes", b"") or b""
                if not isinstance(payload_bytes, (bytes, bytearray)):
                    payload_bytes = bytes(payload_bytes)
                payload = _decode_symbol_data(bytes(payload_bytes))
            if payload:
                payloads.append(payload)
        return payloads


class FrameScanner:
    """Samples camera frames for QR codes and reports each hit once per cooldown.

    :meth:`tick` runs one iteration and can be driven by any UI timer;
    :meth:`start` drives it from a worker thread instead.
    """

    def __init__(
        self,
        camera: FrameSource,
        detector: Detector,
        on_payload: Callable[[str], None],
        *,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_frame: Optional[Callable[[Any], None]] = None,
        scan_interval_seconds: float = SCAN_INTERVAL_SECONDS,
    ) -> None:
        self._camera = camera
        self._detector = detector
        self._on_payload = on_payload
        self._on_frame = on_frame
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._scan_interval_seconds = scan_interval_seconds

        self._cooldown_until = 0.0
        self._last_preview = 0.0
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def cooling_down(self) -> bool:
        return self._clock() < self._cooldown_until

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> Optional[str]:
        if not self._camera.is_streaming or self.cooling_down:
            return None

        ok, frame = self._camera.read_frame()
        if not ok or frame is None:
            return None

        height, width = frame_dimensions(frame)
        if height == 0 or width == 0:
            return None

        self._emit_preview(frame)

        try:
            payloads = self._detector.detect(frame)
        except Exception:
            logger.exception("QR detection failed, skipping frame")
            return None

        for payload in payloads:
            if not payload:
                continue
            with self._lock:
                now = self._clock()
                if now < self._cooldown_until:
                    return None
                self._cooldown_until = now + self._cooldown_seconds

            try:
                self._on_payload(payload)
            except Exception:
                logger.exception("Scan handler failed for payload")
            return payload

        return None

    def reset_cooldown(self) -> None:
        with self._lock:
            self._cooldown_until = 0.0

    def start(self) -> bool:
        with self._lock:
            if self.is_running:
                return True
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(self._stop_event,),
                name="qr-frame-scanner",
                daemon=True,
            )
            self._thread.start()
            return True

    def stop(self) -> None:
        with self._lock:
            thread, self._thread = self._thread, None
            self._stop_event.set()

        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1.5)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(self._scan_interval_seconds)

    def _emit_preview(self, frame: Any) -> None:
        if self._on_frame is None:
            return
        now = self._clock()
        if (now - self._last_preview) < PREVIEW_INTERVAL_SECONDS:
            return
        self._last_preview = now
        try:
            self._on_frame(frame)
        except Exception:  # pragma: no cover - guard preview faults
            logger.exception("Preview callback failed")
