from __future__ import annotations

import logging
import threading
import tkinter.messagebox as messagebox
from tkinter import StringVar
from typing import Any, Callable

import customtkinter as ctk
from PIL import Image, ImageOps

from qr_attendance.models import AttendanceStatus, CameraState, Student
from qr_attendance.services import (
    OutcomeKind,
    RedemptionOutcome,
    ScannerUnavailableError,
    ScanPhase,
    ScanSession,
)
from qr_attendance.services.attendance_service import AttendanceService
from qr_attendance.ui.theme import ACCENT, ACCENT_HOVER, BG, CARD, SURFACE, TEXT, TEXT_MUTED, TONE_COLORS
from qr_attendance.utils import format_relative_time

logger = logging.getLogger(__name__)

PREVIEW_SIZE = (420, 420)
STATUS_TONES = {
    AttendanceStatus.PRESENT: "success",
    AttendanceStatus.LATE: "warning",
    AttendanceStatus.ABSENT: "warning",
}


class ScannerView(ctk.CTkFrame):
    """Student screen: scan the lecturer's QR code and confirm attendance."""

    def __init__(
        self,
        master,
        service: AttendanceService,
        student: Student,
        *,
        session_factory: Callable[..., ScanSession],
    ) -> None:
        super().__init__(master, fg_color=BG)
        self._service = service
        self._student = student
        self._session_factory = session_factory
        self._scan_session: ScanSession | None = None

        self._status_var = StringVar(value="Point your camera at the QR code displayed by your lecturer.")
        self._preview_image: ctk.CTkImage | None = None
        self._preview_busy = False
        placeholder_source = Image.new("RGB", PREVIEW_SIZE, color=(24, 24, 24))
        self._preview_placeholder = ctk.CTkImage(
            light_image=placeholder_source,
            dark_image=placeholder_source.copy(),
            size=PREVIEW_SIZE,
        )

        self._build_widgets()
        self.refresh_history()

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def _build_widgets(self) -> None:
        self.grid_columnconfigure(0, weight=1)
        self.grid_columnconfigure(1, weight=1)
        self.grid_rowconfigure(0, weight=1)

        scanner_card = ctk.CTkFrame(self, fg_color=SURFACE, corner_radius=12)
        scanner_card.grid(row=0, column=0, sticky="nsew", padx=(24, 12), pady=24)
        scanner_card.grid_columnconfigure((0, 1, 2), weight=1)

        ctk.CTkLabel(
            scanner_card,
            text="Scan QR Code",
            font=ctk.CTkFont(size=18, weight="bold"),
            text_color=TEXT,
        ).grid(row=0, column=0, columnspan=3, sticky="w", padx=16, pady=(16, 8))

        self._preview_label = ctk.CTkLabel(scanner_card, image=self._preview_placeholder, text="Camera preview inactive")
        self._preview_label.grid(row=1, column=0, columnspan=3, padx=16, pady=8)

        self._status_label = ctk.CTkLabel(
            scanner_card,
            textvariable=self._status_var,
            text_color=TEXT_MUTED,
            wraplength=PREVIEW_SIZE[0],
        )
        self._status_label.grid(row=2, column=0, columnspan=3, padx=16, pady=8)

        self._scan_button = ctk.CTkButton(
            scanner_card, text="Scan QR Code", fg_color=ACCENT, hover_color=ACCENT_HOVER, command=self.open_scanner
        )
        self._scan_button.grid(row=3, column=0, sticky="ew", padx=(16, 4), pady=(8, 16))
        self._switch_button = ctk.CTkButton(
            scanner_card, text="Switch camera", command=self._handle_switch_camera, state="disabled"
        )
        self._switch_button.grid(row=3, column=1, sticky="ew", padx=4, pady=(8, 16))
        self._cancel_button = ctk.CTkButton(
            scanner_card, text="Cancel", command=self.close_scanner, state="disabled"
        )
        self._cancel_button.grid(row=3, column=2, sticky="ew", padx=(4, 16), pady=(8, 16))

        self._history = ctk.CTkScrollableFrame(
            self, fg_color=SURFACE, corner_radius=12, label_text="Your Attendance Records"
        )
        self._history.grid(row=0, column=1, sticky="nsew", padx=(12, 24), pady=24)
        self._history.grid_columnconfigure(0, weight=1)

    # ------------------------------------------------------------------
    # Scanner lifecycle
    # ------------------------------------------------------------------
    def open_scanner(self) -> None:
        if self._scan_session is not None and self._scan_session.phase is ScanPhase.SCANNING:
            return

        if self._scan_session is None:
            try:
                self._scan_session = self._session_factory(
                    on_outcome=lambda outcome: self.after(0, lambda: self._handle_outcome(outcome)),
                    on_frame=lambda frame: self.after(0, lambda f=frame: self._handle_frame(f)),
                    on_state_change=lambda state, error: self.after(0, lambda: self._handle_camera_state(state, error)),
                )
            except ScannerUnavailableError as exc:
                self._set_status(str(exc), tone="warning")
                return

        self._set_status("Initializing camera...")
        self._configure_controls(scanning=True)
        scan_session = self._scan_session

        def _start() -> None:
            if scan_session.phase is ScanPhase.CAMERA_ERROR:
                scan_session.retry_camera()
            else:
                scan_session.open()

        threading.Thread(target=_start, daemon=True).start()

    def close_scanner(self) -> None:
        if self._scan_session is not None:
            self._scan_session.close()
            if self._scan_session.camera.is_terminal:
                # A terminal camera error needs a fresh scanner.
                self._scan_session = None
        self._reset_preview()
        self._configure_controls(scanning=False)
        self._set_status("Scanner closed.")

    def _handle_switch_camera(self) -> None:
        if self._scan_session is None:
            return
        scan_session = self._scan_session
        self._set_status("Switching camera...")
        threading.Thread(target=scan_session.switch_camera, daemon=True).start()

    def _handle_camera_state(self, state: CameraState, error: Any) -> None:
        if not self.winfo_exists():
            return
        if state is CameraState.STREAMING:
            self._set_status("Point your camera at the QR code.", tone="success")
        elif state is CameraState.RECOVERING:
            self._set_status("Retrying camera...")
        elif state is CameraState.ERROR and error is not None:
            suffix = " Reopen the scanner to start over." if error.terminal else " Press Scan QR Code to retry."
            self._set_status(f"{error.hint}{suffix}", tone="warning")
            self._reset_preview()
            self._configure_controls(scanning=False)
            if error.terminal and self._scan_session is not None:
                self._scan_session.close()
                self._scan_session = None

    def _handle_frame(self, frame: Any) -> None:
        if not self.winfo_exists() or self._preview_busy or frame is None:
            return

        self._preview_busy = True
        try:
            import cv2  # type: ignore[import-not-found]

            rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            square_image = ImageOps.fit(Image.fromarray(rgb_frame), PREVIEW_SIZE, centering=(0.5, 0.5))
            self._preview_image = ctk.CTkImage(light_image=square_image, dark_image=square_image, size=PREVIEW_SIZE)
            self._preview_label.configure(image=self._preview_image, text="")
        except Exception:
            logger.debug("Unable to render camera preview", exc_info=True)
        finally:
            self._preview_busy = False

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------
    def _handle_outcome(self, outcome: RedemptionOutcome) -> None:
        if not self.winfo_exists():
            return

        if outcome.kind is OutcomeKind.VALIDATED and outcome.token is not None:
            self._reset_preview()
            self._configure_controls(scanning=False)
            self._prompt_confirmation(outcome)
            return

        if outcome.kind is OutcomeKind.SUCCESS:
            tone = "warning" if outcome.record and outcome.record.status == AttendanceStatus.LATE else "success"
            self._set_status(outcome.message, tone=tone)
            self.refresh_history()
            return

        self._set_status(f"{outcome.title}: {outcome.message}", tone="warning")

    def _prompt_confirmation(self, outcome: RedemptionOutcome) -> None:
        token = outcome.token
        if token is None:
            return
        details = (
            f"Subject: {token.subject_code}\n"
            f"When: {token.date} • {token.start_time} - {token.end_time}\n"
            f"Venue: {token.location}\n\n"
            f"{outcome.message}"
        )
        if self._scan_session is None:
            return

        while messagebox.askyesno(title=outcome.title, message=details):
            result = self._scan_session.confirm()
            if result.kind is not OutcomeKind.STORE_UNAVAILABLE:
                return
            details = f"{result.message}\n\nTry again?"

        self._scan_session.dismiss()
        self._set_status("Attendance not marked. Scan again when ready.")

    def refresh_history(self) -> None:
        for child in self._history.winfo_children():
            child.destroy()

        records = self._service.list_records_for_student(self._student.student_id)
        if not records:
            ctk.CTkLabel(
                self._history,
                text="No attendance records found.\nScan a QR code to mark your first attendance.",
                text_color=TEXT_MUTED,
            ).grid(row=0, column=0, padx=12, pady=12)
            return

        for row, record in enumerate(records):
            card = ctk.CTkFrame(self._history, fg_color=CARD, corner_radius=8)
            card.grid(row=row, column=0, sticky="ew", padx=8, pady=4)
            card.grid_columnconfigure(0, weight=1)
            ctk.CTkLabel(
                card,
                text=f"{record.student_name}\n{format_relative_time(record.timestamp)}",
                justify="left",
                text_color=TEXT,
            ).grid(row=0, column=0, sticky="w", padx=12, pady=8)
            ctk.CTkLabel(
                card,
                text=record.status,
                text_color=TONE_COLORS[STATUS_TONES.get(record.status, "info")],
            ).grid(row=0, column=1, padx=12, pady=8)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _configure_controls(self, *, scanning: bool) -> None:
        self._scan_button.configure(state="disabled" if scanning else "normal")
        self._switch_button.configure(state="normal" if scanning else "disabled")
        self._cancel_button.configure(state="normal" if scanning else "disabled")

    def _reset_preview(self) -> None:
        self._preview_image = None
        self._preview_label.configure(image=self._preview_placeholder, text="Camera preview inactive")

    def _set_status(self, message: str, tone: str = "info") -> None:
        self._status_var.set(message)
        self._status_label.configure(text_color=TONE_COLORS.get(tone, TEXT_MUTED))

    def destroy(self) -> None:  # pragma: no cover - lifecycle hook
        if self._scan_session is not None:
            self._scan_session.close()
        super().destroy()
