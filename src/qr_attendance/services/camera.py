from __future__ import annotations

import logging
import threading
import time
from contextlib import suppress
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from qr_attendance.models import CameraState

logger = logging.getLogger(__name__)

FACING_ENVIRONMENT = "environment"
FACING_USER = "user"

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0

# (width, height) requested on first acquisition, by device class.
INITIAL_RESOLUTIONS: dict[str, tuple[int, int]] = {
    "mobile": (640, 480),
    "desktop": (1280, 720),
}
MINIMAL_RESOLUTION = (320, 240)


class CameraErrorKind(str, Enum):
    PERMISSION_DENIED = "permission"
    NO_DEVICE = "no_camera"
    DEVICE_BUSY = "camera_busy"
    UNSUPPORTED = "unsupported"


REMEDIATION_HINTS: dict[CameraErrorKind, str] = {
    CameraErrorKind.PERMISSION_DENIED: "Allow camera access for this application in your system settings, then retry.",
    CameraErrorKind.NO_DEVICE: "No camera was found. Connect a camera and reopen the scanner.",
    CameraErrorKind.DEVICE_BUSY: "The camera is in use. Close other apps using the camera, then retry.",
    CameraErrorKind.UNSUPPORTED: "This camera does not support the requested mode. Try switching cameras.",
}


class CameraAcquisitionError(RuntimeError):
    def __init__(self, kind: CameraErrorKind, message: str | None = None) -> None:
        super().__init__(message or REMEDIATION_HINTS[kind])
        self.kind = kind

    @property
    def hint(self) -> str:
        return REMEDIATION_HINTS[self.kind]


class _AcquisitionAbandoned(Exception):
    """The scanner was closed or a newer acquisition started."""


@dataclass(frozen=True)
class CameraConstraints:
    facing_mode: Optional[str] = FACING_ENVIRONMENT
    width: Optional[int] = None
    height: Optional[int] = None
    any_video: bool = False

    def describe(self) -> str:
        if self.any_video:
            return "any camera"
        size = f"{self.width}x{self.height}" if self.width and self.height else "default size"
        return f"{self.facing_mode or 'any'} camera at {size}"


@dataclass(frozen=True)
class CameraError:
    kind: CameraErrorKind
    message: str
    terminal: bool = False

    @property
    def hint(self) -> str:
        return REMEDIATION_HINTS[self.kind]


class VideoStream(Protocol):
    @property
    def active(self) -> bool: ...

    def read(self) -> tuple[bool, Any]: ...

    def stop(self) -> None: ...


class VideoSource(Protocol):
    def acquire(self, constraints: CameraConstraints) -> VideoStream: ...

    def release(self, stream: VideoStream) -> None: ...

    def list_devices(self) -> list[int]: ...


def opposite_facing(facing_mode: Optional[str]) -> str:
    return FACING_USER if facing_mode == FACING_ENVIRONMENT else FACING_ENVIRONMENT


def initial_constraints(facing_mode: str = FACING_ENVIRONMENT, device_class: str = "desktop") -> CameraConstraints:
    width, height = INITIAL_RESOLUTIONS.get(device_class, INITIAL_RESOLUTIONS["desktop"])
    return CameraConstraints(facing_mode=facing_mode, width=width, height=height)


def busy_fallbacks(constraints: CameraConstraints) -> list[CameraConstraints]:
    """Progressively looser requests tried when the device reports busy."""

    width, height = MINIMAL_RESOLUTION
    return [
        CameraConstraints(facing_mode=None, any_video=True),
        replace(constraints, facing_mode=opposite_facing(constraints.facing_mode)),
        CameraConstraints(facing_mode=constraints.facing_mode, width=width, height=height),
    ]


class CameraController:
    """Acquisition state machine for the scanner's single camera stream.

    ``idle -> acquiring -> streaming``; failures land in ``error`` and a
    manual :meth:`retry` passes through ``recovering``. After
    ``max_retries`` consecutive failed acquisitions the error is terminal
    and only :meth:`reset` brings the controller back.
    """

    def __init__(
        self,
        source: VideoSource,
        *,
        facing_mode: str = FACING_ENVIRONMENT,
        device_class: str = "desktop",
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        on_state_change: Optional[Callable[[CameraState, Optional[CameraError]], None]] = None,
    ) -> None:
        self._source = source
        self._facing_mode = facing_mode
        self._device_class = device_class
        self._max_retries = max(1, max_retries)
        self._retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self._state = CameraState.IDLE
        self._stream: VideoStream | None = None
        self._error: CameraError | None = None
        self._failures = 0
        self._generation = 0
        self._scanning_disabled = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> CameraState:
        return self._state

    @property
    def error(self) -> CameraError | None:
        return self._error

    @property
    def facing_mode(self) -> str:
        return self._facing_mode

    @property
    def retry_count(self) -> int:
        return self._failures

    @property
    def is_terminal(self) -> bool:
        return self._error is not None and self._error.terminal

    @property
    def scanning_disabled(self) -> bool:
        return self._scanning_disabled

    @property
    def is_streaming(self) -> bool:
        stream = self._stream
        return self._state is CameraState.STREAMING and stream is not None and stream.active

    def read_frame(self) -> tuple[bool, Any]:
        stream = self._stream
        if stream is None or not stream.active:
            return False, None
        return stream.read()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(self) -> bool:
        with self._lock:
            if self.is_streaming:
                return True
            if self.is_terminal or self._state is not CameraState.IDLE:
                return False
            self._generation += 1
            generation = self._generation
            self._set_state(CameraState.ACQUIRING)
        return self._acquire(generation)

    def retry(self) -> bool:
        """Manual retry from a non-terminal error."""

        with self._lock:
            if self._state is not CameraState.ERROR or self.is_terminal:
                return False
            self._generation += 1
            generation = self._generation
            self._set_state(CameraState.RECOVERING, self._error)
        return self._acquire(generation)

    def switch_camera(self) -> bool:
        with self._lock:
            if self.is_terminal:
                return False
            self._generation += 1
            generation = self._generation
            self._stop_stream()
            self._facing_mode = opposite_facing(self._facing_mode)
            self._error = None
            self._set_state(CameraState.ACQUIRING)
        logger.info("Switching camera to %s facing", self._facing_mode)
        return self._acquire(generation)

    def close(self) -> None:
        """Stop every track now; in-flight acquisitions release on return."""

        with self._lock:
            self._generation += 1
            self._stop_stream()
            if not self.is_terminal:
                self._set_state(CameraState.IDLE)

    def reset(self) -> None:
        with self._lock:
            self.close()
            self._failures = 0
            self._error = None
            self._scanning_disabled = False
            self._set_state(CameraState.IDLE)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _acquire(self, generation: int) -> bool:
        constraints = initial_constraints(self._facing_mode, self._device_class)
        try:
            stream = self._attempt(constraints, generation)
        except _AcquisitionAbandoned:
            return False
        except CameraAcquisitionError as exc:
            self._fail(exc, generation)
            return False

        with self._lock:
            if generation != self._generation:
                logger.debug("Releasing camera stream from an abandoned acquisition")
                self._release(stream)
                return False
            self._stream = stream
            self._failures = 0
            self._error = None
            self._set_state(CameraState.STREAMING)
        return True

    def _attempt(self, constraints: CameraConstraints, generation: int) -> VideoStream:
        try:
            return self._source.acquire(constraints)
        except CameraAcquisitionError as exc:
            logger.info("Camera request for %s failed: %s", constraints.describe(), exc)
            if exc.kind is CameraErrorKind.UNSUPPORTED:
                self._check_current(generation)
                flipped = replace(constraints, facing_mode=opposite_facing(constraints.facing_mode))
                stream = self._source.acquire(flipped)
                self._facing_mode = flipped.facing_mode or self._facing_mode
                return stream
            if exc.kind is CameraErrorKind.DEVICE_BUSY:
                return self._recover_from_busy(constraints, generation)
            raise

    def _recover_from_busy(self, constraints: CameraConstraints, generation: int) -> VideoStream:
        for fallback in busy_fallbacks(constraints):
            self._check_current(generation)
            try:
                stream = self._source.acquire(fallback)
            except CameraAcquisitionError as exc:
                if exc.kind in (CameraErrorKind.PERMISSION_DENIED, CameraErrorKind.NO_DEVICE):
                    raise
                logger.debug("Fallback %s failed: %s", fallback.describe(), exc)
                continue
            if fallback.facing_mode:
                self._facing_mode = fallback.facing_mode
            return stream

        self._sleep(self._retry_delay_seconds)
        self._check_current(generation)
        try:
            return self._source.acquire(constraints)
        except CameraAcquisitionError as exc:
            if exc.kind in (CameraErrorKind.PERMISSION_DENIED, CameraErrorKind.NO_DEVICE):
                raise
            raise CameraAcquisitionError(CameraErrorKind.DEVICE_BUSY) from exc

    def _check_current(self, generation: int) -> None:
        if generation != self._generation:
            raise _AcquisitionAbandoned()

    def _fail(self, exc: CameraAcquisitionError, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._failures += 1
            terminal = False
            if exc.kind is CameraErrorKind.NO_DEVICE:
                self._scanning_disabled = True
                terminal = True
            elif self._failures >= self._max_retries:
                terminal = True
            self._error = CameraError(kind=exc.kind, message=str(exc), terminal=terminal)
            logger.warning(
                "Camera acquisition failed (%s, attempt %d/%d%s)",
                exc.kind.value,
                self._failures,
                self._max_retries,
                ", giving up" if terminal else "",
            )
            self._set_state(CameraState.ERROR, self._error)

    def _stop_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            self._release(stream)

    def _release(self, stream: VideoStream) -> None:
        try:
            self._source.release(stream)
        finally:
            if stream.active:
                stream.stop()

    def _set_state(self, state: CameraState, error: CameraError | None = None) -> None:
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state, error)
            except Exception:  # pragma: no cover - guard listener faults
                logger.exception("Camera state listener failed")


class OpenCVStream:
    def __init__(self, capture: Any, device_index: int) -> None:
        self._capture = capture
        self.device_index = device_index
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def read(self) -> tuple[bool, Any]:
        if not self._active:
            return False, None
        return self._capture.read()

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        with suppress(Exception):
            self._capture.release()


class OpenCVVideoSource:
    """Camera access through OpenCV; facing modes map to device indices."""

    def __init__(self, *, rear_index: int = 0, front_index: int = 1, probe_limit: int = 4) -> None:
        self._indices = {FACING_ENVIRONMENT: rear_index, FACING_USER: front_index}
        self._probe_limit = probe_limit

    def acquire(self, constraints: CameraConstraints) -> OpenCVStream:
        cv2_module = self._cv2()
        index = self._indices[FACING_ENVIRONMENT]
        if not constraints.any_video and constraints.facing_mode in self._indices:
            index = self._indices[constraints.facing_mode]

        capture = self._open_capture(cv2_module, index)
        if capture is None:
            if not self.list_devices():
                raise CameraAcquisitionError(CameraErrorKind.NO_DEVICE)
            raise CameraAcquisitionError(
                CameraErrorKind.DEVICE_BUSY,
                f"Unable to open camera {index}. Check that it is not used by another app.",
            )

        if not constraints.any_video and constraints.width and constraints.height:
            capture.set(cv2_module.CAP_PROP_FRAME_WIDTH, constraints.width)
            capture.set(cv2_module.CAP_PROP_FRAME_HEIGHT, constraints.height)

        return OpenCVStream(capture, index)

    def release(self, stream: VideoStream) -> None:
        stream.stop()

    def list_devices(self) -> list[int]:
        cv2_module = self._cv2()
        devices: list[int] = []
        for index in range(self._probe_limit):
            capture = self._open_capture(cv2_module, index)
            if capture is not None:
                devices.append(index)
                with suppress(Exception):
                    capture.release()
        return devices

    @staticmethod
    def _cv2():
        try:
            import cv2  # type: ignore[import-not-found]
        except ImportError as exc:
            raise CameraAcquisitionError(
                CameraErrorKind.NO_DEVICE,
                "OpenCV is not installed, so no camera can be opened.",
            ) from exc
        return cv2

    @staticmethod
    def _open_capture(cv2_module, index: int):
        backend_preferences = [getattr(cv2_module, "CAP_DSHOW", None), getattr(cv2_module, "CAP_ANY", None)]

        for backend in backend_preferences:
            if backend is None:
                capture = cv2_module.VideoCapture(index)
            else:
                capture = cv2_module.VideoCapture(index, backend)

            if capture.isOpened():
                return capture

            capture.release()

        return None
