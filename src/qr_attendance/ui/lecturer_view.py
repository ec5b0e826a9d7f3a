from __future__ import annotations

import logging
import tkinter.messagebox as messagebox
from datetime import date
from pathlib import Path
from tkinter import StringVar

import customtkinter as ctk

from qr_attendance.data import StoreUnavailableError
from qr_attendance.models import AttendanceSession, Issuer, Subject
from qr_attendance.services import SessionManager, SessionValidationError
from qr_attendance.services.attendance_service import AttendanceService
from qr_attendance.ui.theme import (
    ACCENT,
    ACCENT_HOVER,
    BG,
    CARD,
    DANGER,
    DANGER_HOVER,
    SURFACE,
    TEXT,
    TEXT_MUTED,
    TONE_COLORS,
)
from qr_attendance.utils import current_millis, format_relative_time

logger = logging.getLogger(__name__)

QR_PREVIEW_SIZE = (300, 300)
NO_SELECTION = "Select"


class LecturerView(ctk.CTkFrame):
    """Create attendance sessions, show their QR codes and stop them."""

    def __init__(
        self,
        master,
        service: AttendanceService,
        manager: SessionManager,
        issuer: Issuer,
        *,
        export_dir: Path,
    ) -> None:
        super().__init__(master, fg_color=BG)
        self._service = service
        self._manager = manager
        self._issuer = issuer
        self._export_dir = export_dir

        self._current_session: AttendanceSession | None = None
        self._qr_image: ctk.CTkImage | None = None
        self._subjects: dict[str, Subject] = {}
        self._course_codes: dict[str, str] = {}

        self.course_var = StringVar(value=NO_SELECTION)
        self.subject_var = StringVar(value=NO_SELECTION)
        self.venue_var = StringVar()
        self.date_var = StringVar(value=date.today().isoformat())
        self.start_var = StringVar(value="08:00")
        self.end_var = StringVar(value="09:00")
        self._status_var = StringVar(value="Create a session to display its attendance QR code.")
        self._qr_caption_var = StringVar(value="")

        self._build_widgets()
        self._load_courses()
        self.refresh_sessions()

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def _build_widgets(self) -> None:
        self.grid_columnconfigure(0, weight=1)
        self.grid_columnconfigure(1, weight=1)
        self.grid_rowconfigure(1, weight=1)

        form = ctk.CTkFrame(self, fg_color=SURFACE, corner_radius=12)
        form.grid(row=0, column=0, sticky="nsew", padx=(24, 12), pady=24)
        form.grid_columnconfigure(1, weight=1)

        ctk.CTkLabel(
            form,
            text="Create Attendance Session",
            font=ctk.CTkFont(size=18, weight="bold"),
            text_color=TEXT,
        ).grid(row=0, column=0, columnspan=2, sticky="w", padx=16, pady=(16, 12))

        self._course_menu = ctk.CTkOptionMenu(
            form,
            variable=self.course_var,
            values=[NO_SELECTION],
            command=self._handle_course_select,
        )
        self._subject_menu = ctk.CTkOptionMenu(form, variable=self.subject_var, values=[NO_SELECTION])
        self._subject_menu.configure(state="disabled")

        rows = (
            ("Course", self._course_menu),
            ("Subject", self._subject_menu),
            ("Venue", ctk.CTkEntry(form, textvariable=self.venue_var)),
            ("Date", ctk.CTkEntry(form, textvariable=self.date_var, placeholder_text="YYYY-MM-DD")),
            ("Start time", ctk.CTkEntry(form, textvariable=self.start_var, placeholder_text="HH:MM")),
            ("End time", ctk.CTkEntry(form, textvariable=self.end_var, placeholder_text="HH:MM")),
        )
        for index, (label, widget) in enumerate(rows, start=1):
            ctk.CTkLabel(form, text=label, text_color=TEXT_MUTED).grid(row=index, column=0, sticky="w", padx=16, pady=6)
            widget.grid(row=index, column=1, sticky="ew", padx=16, pady=6)

        ctk.CTkButton(
            form,
            text="Create session",
            fg_color=ACCENT,
            hover_color=ACCENT_HOVER,
            command=self._handle_create_session,
        ).grid(row=len(rows) + 1, column=0, columnspan=2, sticky="ew", padx=16, pady=(12, 6))

        self._status_label = ctk.CTkLabel(form, textvariable=self._status_var, text_color=TEXT_MUTED, wraplength=360)
        self._status_label.grid(row=len(rows) + 2, column=0, columnspan=2, sticky="w", padx=16, pady=(0, 16))

        qr_card = ctk.CTkFrame(self, fg_color=SURFACE, corner_radius=12)
        qr_card.grid(row=0, column=1, sticky="nsew", padx=(12, 24), pady=24)
        qr_card.grid_columnconfigure((0, 1), weight=1)

        self._qr_label = ctk.CTkLabel(qr_card, text="No session selected", width=QR_PREVIEW_SIZE[0], height=QR_PREVIEW_SIZE[1])
        self._qr_label.grid(row=0, column=0, columnspan=2, padx=16, pady=(16, 8))
        ctk.CTkLabel(qr_card, textvariable=self._qr_caption_var, text_color=TEXT_MUTED).grid(
            row=1, column=0, columnspan=2, padx=16, pady=(0, 8)
        )

        self._export_button = ctk.CTkButton(
            qr_card,
            text="Download QR",
            fg_color=ACCENT,
            hover_color=ACCENT_HOVER,
            command=self._handle_export,
            state="disabled",
        )
        self._export_button.grid(row=2, column=0, sticky="ew", padx=(16, 6), pady=(0, 16))
        self._stop_button = ctk.CTkButton(
            qr_card,
            text="Stop session",
            fg_color=DANGER,
            hover_color=DANGER_HOVER,
            command=self._handle_stop_current,
            state="disabled",
        )
        self._stop_button.grid(row=2, column=1, sticky="ew", padx=(6, 16), pady=(0, 16))

        self._sessions_list = ctk.CTkScrollableFrame(self, fg_color=SURFACE, corner_radius=12, label_text="Your sessions")
        self._sessions_list.grid(row=1, column=0, columnspan=2, sticky="nsew", padx=24, pady=(0, 24))
        self._sessions_list.grid_columnconfigure(0, weight=1)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    def _load_courses(self) -> None:
        courses = self._service.list_courses()
        self._course_codes = {f"{course.name} ({course.code})": course.code for course in courses}
        values = [NO_SELECTION, *self._course_codes]
        self._course_menu.configure(values=values)

    def _handle_course_select(self, choice: str) -> None:
        self.subject_var.set(NO_SELECTION)
        course_code = self._course_codes.get(choice)
        if course_code is None:
            self._subjects = {}
            self._subject_menu.configure(values=[NO_SELECTION], state="disabled")
            return

        subjects = self._service.list_subjects_for_course(course_code)
        self._subjects = {f"{subject.name} ({subject.code})": subject for subject in subjects}
        self._subject_menu.configure(values=[NO_SELECTION, *self._subjects], state="normal")

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def _handle_create_session(self) -> None:
        course_code = self._course_codes.get(self.course_var.get(), "")
        subject = self._subjects.get(self.subject_var.get())

        if not course_code or subject is None:
            self._set_status("Please select valid subject and course.", tone="warning")
            return

        try:
            session = self._manager.create_session(
                self._issuer,
                subject.code,
                course_code,
                self.venue_var.get(),
                self.date_var.get(),
                self.start_var.get(),
                self.end_var.get(),
            )
        except SessionValidationError as exc:
            self._set_status(str(exc), tone="warning")
            return
        except StoreUnavailableError as exc:
            logger.error("Session creation failed: %s", exc)
            self._set_status("Failed to create attendance session.", tone="warning")
            return

        self.venue_var.set("")
        self._set_status("Attendance session created successfully.", tone="success")
        self._show_session(session)
        self.refresh_sessions()

    def _handle_stop_current(self) -> None:
        if self._current_session is not None:
            self._stop_session(self._current_session.id)

    def _stop_session(self, session_id: str) -> None:
        try:
            self._manager.deactivate_session(session_id)
        except (LookupError, StoreUnavailableError) as exc:
            self._set_status(f"Failed to stop attendance session: {exc}", tone="warning")
            return

        if self._current_session is not None and self._current_session.id == session_id:
            self._clear_qr()
        self._set_status("Attendance session has been stopped.", tone="success")
        self.refresh_sessions()

    def _handle_export(self) -> None:
        if self._current_session is None:
            return
        try:
            path = self._manager.export_display(self._current_session, self._export_dir)
        except OSError as exc:
            messagebox.showerror(title="QR Code Error", message=f"Failed to save QR code: {exc}")
            return
        self._set_status(f"Saved QR code to {path}", tone="success")

    # ------------------------------------------------------------------
    # QR display
    # ------------------------------------------------------------------
    def _show_session(self, session: AttendanceSession) -> None:
        image = self._manager.regenerate_display(session)
        self._qr_image = ctk.CTkImage(light_image=image, dark_image=image, size=QR_PREVIEW_SIZE)
        self._qr_label.configure(image=self._qr_image, text="")
        self._qr_caption_var.set(session.display_label())
        self._current_session = session
        state = "normal" if session.active else "disabled"
        self._stop_button.configure(state=state)
        self._export_button.configure(state="normal")

    def _clear_qr(self) -> None:
        self._current_session = None
        self._qr_image = None
        self._qr_label.configure(image=None, text="No session selected")
        self._qr_caption_var.set("")
        self._stop_button.configure(state="disabled")
        self._export_button.configure(state="disabled")

    def refresh_sessions(self) -> None:
        self._manager.expire_sessions()
        for child in self._sessions_list.winfo_children():
            child.destroy()

        sessions = self._manager.list_sessions(self._issuer.issuer_id)
        if not sessions:
            ctk.CTkLabel(self._sessions_list, text="No attendance sessions yet.", text_color=TEXT_MUTED).grid(
                row=0, column=0, sticky="w", padx=12, pady=12
            )
            return

        now = current_millis()
        for row, session in enumerate(sessions):
            card = ctk.CTkFrame(self._sessions_list, fg_color=CARD, corner_radius=8)
            card.grid(row=row, column=0, sticky="ew", padx=8, pady=4)
            card.grid_columnconfigure(0, weight=1)

            attended = len(self._manager.session_attendance(session.id))
            state_text = "Active" if session.active else "Stopped"
            ctk.CTkLabel(
                card,
                text=(
                    f"{session.subject_name} · {session.display_label()}\n"
                    f"{state_text} · {attended} attended · created {format_relative_time(session.created_at)}"
                ),
                justify="left",
                text_color=TEXT if session.active and not session.is_expired(now) else TEXT_MUTED,
            ).grid(row=0, column=0, sticky="w", padx=12, pady=8)

            ctk.CTkButton(
                card,
                text="Show QR",
                width=90,
                command=lambda s=session: self._show_session(s),
            ).grid(row=0, column=1, padx=6, pady=8)
            if session.active:
                ctk.CTkButton(
                    card,
                    text="Stop",
                    width=70,
                    fg_color=DANGER,
                    hover_color=DANGER_HOVER,
                    command=lambda session_id=session.id: self._stop_session(session_id),
                ).grid(row=0, column=2, padx=(0, 12), pady=8)

    def _set_status(self, message: str, tone: str = "info") -> None:
        self._status_var.set(message)
        self._status_label.configure(text_color=TONE_COLORS.get(tone, TEXT_MUTED))
