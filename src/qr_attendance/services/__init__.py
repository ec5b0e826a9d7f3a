from .attendance_service import AttendanceService, DuplicateAttendanceError
from .camera import (
	CameraAcquisitionError,
	CameraConstraints,
	CameraController,
	CameraError,
	CameraErrorKind,
	OpenCVVideoSource,
)
from .qr_scanner import FrameScanner, ScannerUnavailableError, ZXingDetector
from .redemption import OutcomeKind, RedemptionOutcome, RedemptionValidator
from .scan_session import ScanPhase, ScanSession
from .session_manager import SessionManager, SessionNotFoundError, SessionValidationError

__all__ = [
	"AttendanceService",
	"CameraAcquisitionError",
	"CameraConstraints",
	"CameraController",
	"CameraError",
	"CameraErrorKind",
	"DuplicateAttendanceError",
	"FrameScanner",
	"OpenCVVideoSource",
	"OutcomeKind",
	"RedemptionOutcome",
	"RedemptionValidator",
	"ScanPhase",
	"ScanSession",
	"ScannerUnavailableError",
	"SessionManager",
	"SessionNotFoundError",
	"SessionValidationError",
	"ZXingDetector",
]
