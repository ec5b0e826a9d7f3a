from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import customtkinter as ctk

from qr_attendance.config import Settings
from qr_attendance.data import Database
from qr_attendance.models import CameraState, Issuer, Student
from qr_attendance.services import (
    AttendanceService,
    CameraController,
    OpenCVVideoSource,
    RedemptionOutcome,
    RedemptionValidator,
    ScanSession,
    SessionManager,
    ZXingDetector,
)
from qr_attendance.ui.lecturer_view import LecturerView
from qr_attendance.ui.scanner_view import ScannerView
from qr_attendance.ui.theme import BG

logger = logging.getLogger(__name__)


class AttendanceApp:
    def __init__(self, settings: Settings, *, issuer: Issuer, student: Student) -> None:
        self._settings = settings

        ctk.set_appearance_mode("dark")

        self._root = ctk.CTk()
        self._root.title(settings.app_name)
        self._root.geometry("1280x760")
        self._root.minsize(1080, 640)
        self._root.configure(fg_color=BG)

        self._database = Database(settings.database_path)
        self._service = AttendanceService(self._database)
        self._service.initialize()

        self._manager = SessionManager(self._service, session_ttl_hours=settings.session_ttl_hours)
        self._validator = RedemptionValidator(
            self._service,
            token_ttl_minutes=settings.token_ttl_minutes,
            grace_minutes=settings.late_grace_minutes,
        )

        tabs = ctk.CTkTabview(self._root, fg_color=BG)
        tabs.pack(fill="both", expand=True, padx=12, pady=12)
        lecturer_tab = tabs.add("Lecturer")
        student_tab = tabs.add("Student")
        for tab in (lecturer_tab, student_tab):
            tab.grid_rowconfigure(0, weight=1)
            tab.grid_columnconfigure(0, weight=1)

        self._lecturer_view = LecturerView(
            lecturer_tab,
            self._service,
            self._manager,
            issuer,
            export_dir=settings.qr_export_dir,
        )
        self._lecturer_view.grid(row=0, column=0, sticky="nsew")

        self._scanner_view = ScannerView(
            student_tab,
            self._service,
            student,
            session_factory=lambda **callbacks: self._build_scan_session(student, **callbacks),
        )
        self._scanner_view.grid(row=0, column=0, sticky="nsew")

        self._root.protocol("WM_DELETE_WINDOW", self._on_close)

    def _build_scan_session(
        self,
        student: Student,
        *,
        on_outcome: Optional[Callable[[RedemptionOutcome], None]] = None,
        on_frame: Optional[Callable[[Any], None]] = None,
        on_state_change: Optional[Callable[[CameraState, Any], None]] = None,
    ) -> ScanSession:
        camera = CameraController(
            OpenCVVideoSource(
                rear_index=self._settings.rear_camera_index,
                front_index=self._settings.front_camera_index,
            ),
            device_class=self._settings.device_class,
            max_retries=self._settings.max_camera_retries,
            retry_delay_seconds=self._settings.camera_retry_delay_seconds,
            on_state_change=on_state_change,
        )
        return ScanSession(
            camera,
            ZXingDetector(),
            self._validator,
            student,
            cooldown_seconds=self._settings.detection_cooldown_seconds,
            on_outcome=on_outcome,
            on_frame=on_frame,
        )

    def _on_close(self) -> None:
        self._scanner_view.close_scanner()
        self._root.destroy()

    def run(self) -> None:
        self._root.mainloop()
