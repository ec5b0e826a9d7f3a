from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

from qr_attendance.models import AttendanceToken, Student
from qr_attendance.services.camera import CameraController
from qr_attendance.services.qr_scanner import DEFAULT_COOLDOWN_SECONDS, Detector, FrameScanner
from qr_attendance.services.redemption import OutcomeKind, RedemptionOutcome, RedemptionValidator

logger = logging.getLogger(__name__)


class ScanPhase(str, Enum):
    CLOSED = "closed"
    SCANNING = "scanning"
    CAMERA_ERROR = "camera_error"
    CONFIRMING = "confirming"
    DONE = "done"


class ScanSession:
    """One visit to the student's scanning screen.

    Rejected scans keep the scanner running. A validated scan stops the
    camera and waits in ``confirming`` until the student confirms or
    dismisses it; a failed write leaves it pending so it can be retried.
    """

    def __init__(
        self,
        camera: CameraController,
        detector: Detector,
        validator: RedemptionValidator,
        student: Student,
        *,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        on_outcome: Optional[Callable[[RedemptionOutcome], None]] = None,
        on_frame: Optional[Callable[[Any], None]] = None,
    ) -> None:
        self._camera = camera
        self._validator = validator
        self._student = student
        self._on_outcome = on_outcome
        self._lock = threading.Lock()
        self._phase = ScanPhase.CLOSED
        self._pending: AttendanceToken | None = None
        self._scanner = FrameScanner(
            camera,
            detector,
            self._handle_payload,
            cooldown_seconds=cooldown_seconds,
            on_frame=on_frame,
        )

    @property
    def phase(self) -> ScanPhase:
        return self._phase

    @property
    def pending(self) -> AttendanceToken | None:
        return self._pending

    @property
    def camera(self) -> CameraController:
        return self._camera

    @property
    def scanner(self) -> FrameScanner:
        return self._scanner

    def open(self, *, run_loop: bool = True) -> bool:
        """Acquire the camera and start scanning.

        With ``run_loop=False`` the caller drives :meth:`FrameScanner.tick`.
        """

        with self._lock:
            self._pending = None
            self._phase = ScanPhase.SCANNING
        return self._begin_scanning(self._camera.start(), run_loop)

    def retry_camera(self, *, run_loop: bool = True) -> bool:
        if self._awaiting_student():
            return False
        return self._begin_scanning(self._camera.retry(), run_loop)

    def switch_camera(self, *, run_loop: bool = True) -> bool:
        if self._awaiting_student():
            return False
        return self._begin_scanning(self._camera.switch_camera(), run_loop)

    def confirm(self) -> RedemptionOutcome:
        with self._lock:
            token = self._pending
        if token is None:
            raise RuntimeError("There is no scanned attendance code awaiting confirmation.")

        outcome = self._validator.confirm(token, self._student)
        with self._lock:
            if outcome.kind is not OutcomeKind.STORE_UNAVAILABLE:
                self._pending = None
                self._phase = ScanPhase.DONE
        self._notify(outcome)
        return outcome

    def dismiss(self) -> None:
        """Drop the pending token and release the camera, whatever the phase."""

        self.close()

    def close(self) -> None:
        self._scanner.stop()
        self._camera.close()
        with self._lock:
            self._pending = None
            self._phase = ScanPhase.CLOSED

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _awaiting_student(self) -> bool:
        return self._phase in (ScanPhase.CONFIRMING, ScanPhase.DONE)

    def _begin_scanning(self, acquired: bool, run_loop: bool) -> bool:
        with self._lock:
            if self._phase is ScanPhase.CLOSED:
                # Closed while the camera was being acquired.
                self._camera.close()
                return False
            if not acquired:
                self._phase = ScanPhase.CAMERA_ERROR
                return False
            self._phase = ScanPhase.SCANNING

        self._scanner.reset_cooldown()
        if run_loop:
            self._scanner.start()
        return True

    def _handle_payload(self, raw: str) -> None:
        with self._lock:
            if self._phase is not ScanPhase.SCANNING:
                return

        outcome = self._validator.validate(raw, self._student.student_id)

        if outcome.kind is OutcomeKind.VALIDATED:
            with self._lock:
                if self._phase is not ScanPhase.SCANNING:
                    return
                self._pending = outcome.token
                self._phase = ScanPhase.CONFIRMING
            self._scanner.stop()
            self._camera.close()
        else:
            logger.info("Scan rejected: %s", outcome.kind.value)

        self._notify(outcome)

    def _notify(self, outcome: RedemptionOutcome) -> None:
        if self._on_outcome is None:
            return
        try:
            self._on_outcome(outcome)
        except Exception:  # pragma: no cover - guard listener faults
            logger.exception("Scan outcome listener failed")
