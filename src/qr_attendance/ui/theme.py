from __future__ import annotations

# Surfaces
BG = "#1E1E1E"
SURFACE = "#252526"
CARD = "#2F2F33"
BORDER = "#3C3C3C"

# Accent
ACCENT = "#0E639C"
ACCENT_HOVER = "#1177BB"
DANGER = "#F26D6D"
DANGER_HOVER = "#D95A5A"

# Text
TEXT = "#F3F3F3"
TEXT_MUTED = "#9DA5B4"

# Status
SUCCESS = "#6A9955"
WARNING = "#F48771"
INFO = "#3794FF"

TONE_COLORS = {
    "info": TEXT_MUTED,
    "success": SUCCESS,
    "warning": WARNING,
}
