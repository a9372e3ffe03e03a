"""
Advanced Compass - Heading Smoothing, Correction and Logging
GUI Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Dark-mode compass dashboard built with Flet: the compass rose with its
needle, the heading readouts, declination controls and the heading log.
"""

import datetime
import logging
import math
import threading
from typing import Callable, Optional, Sequence

import numpy as np
import flet as ft
import flet.canvas as cv

from localization import t

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Colours
# ---------------------------------------------------------------------------
THEME_DARK = {
    "bg": "#0B0E11",
    "card_bg": "#141A22",
    "accent": "#00B4D8",
    "error": "#F43F5E",
    "text": "#B0BEC5",
    "heading": "#E0E6EC",
    "muted": "#9FB6C6",
    "tick_major": "#DFF3FB",
    "tick_minor": "#9FCFDC",
    "tick_label": "#BFE9F2",
    "rose": "#2A3442",
    "needle_north": "#F43F5E",
    "needle_south": "#B0BEC5",
    "pinned": "#1E3A4A",
}

COLOR_BG = THEME_DARK["bg"]
COLOR_CARD_BG = THEME_DARK["card_bg"]
COLOR_ACCENT = THEME_DARK["accent"]
COLOR_ERROR = THEME_DARK["error"]
CARD_CORNER_RADIUS = 12

# Compass geometry (drawn in 400×400 design units, scaled to the canvas)
COMPASS_SIZE = 320
_CX = COMPASS_SIZE / 2
_CY = COMPASS_SIZE / 2
_R = COMPASS_SIZE / 2 - 8
_SCALE = COMPASS_SIZE / 400
MAJOR_TICK_STEP = 30

DECLINATION_ERROR_SECONDS = 0.8


def _card(content: ft.Control, **kwargs) -> ft.Container:
    """Wrap *content* in a Material Design 3 card container."""
    return ft.Container(
        content=content,
        bgcolor=COLOR_CARD_BG,
        border_radius=CARD_CORNER_RADIUS,
        padding=10,
        **kwargs,
    )


def _polar(angle_deg: float, radius: float) -> tuple:
    """Canvas point at compass *angle_deg* (0 = up, clockwise) and *radius*."""
    rad = math.radians(angle_deg - 90)
    return _CX + radius * math.cos(rad), _CY + radius * math.sin(rad)


def tick_angles(density: int) -> np.ndarray:
    """Return the tick angles for *density* ticks around the rose."""
    step = max(1, int(math.floor(360 / max(1, density) + 0.5)))
    return np.arange(0, 360, step)


def local_xy(event) -> tuple:
    """Return widget-local pointer coordinates from a Flet gesture event."""
    position = getattr(event, "local_position", None)
    if position is not None:
        return float(position.x), float(position.y)
    return float(event.local_x), float(event.local_y)


class CompassGUI:
    """Main compass GUI built with Flet.

    Args:
        page: The Flet ``Page`` object.
        auto_mount: Add the layout to *page* immediately.  Pass ``False``
            to build the controls first and call :meth:`mount` later.
    """

    def __init__(self, page: ft.Page, auto_mount: bool = True):
        self.page = page
        self._theme = dict(THEME_DARK)
        self._tick_density = 36
        self._needle_angle = 0.0

        # Set by the controller
        self.on_pin_entry: Optional[Callable[[int], None]] = None

        # -- Readouts -------------------------------------------------------
        self.lbl_heading = ft.Text(
            "---°", size=40, font_family="RobotoMono",
            color=self._theme["accent"], weight=ft.FontWeight.BOLD,
        )
        self.lbl_direction = ft.Text(
            "--", size=20, font_family="RobotoMono",
            color=self._theme["heading"],
        )
        self.lbl_cardinal = ft.Text("--", size=14, font_family="RobotoMono")
        self.lbl_accuracy = ft.Text("—", size=14, font_family="RobotoMono")
        self.lbl_mode = ft.Text("Magnetic", size=14, font_family="RobotoMono")
        self.lbl_status = ft.Text(
            t("status.prefix").format(text=t("status.waiting")),
            size=12, color=self._theme["muted"], italic=True,
        )

        # -- Compass rose -------------------------------------------------
        self.compass_canvas = cv.Canvas(
            width=COMPASS_SIZE, height=COMPASS_SIZE,
            shapes=self._compass_shapes(0.0, self._tick_density),
        )
        self.gesture = ft.GestureDetector(
            content=ft.Container(
                content=self.compass_canvas,
                width=COMPASS_SIZE, height=COMPASS_SIZE,
            ),
            drag_interval=10,
        )

        # -- Correction controls ------------------------------------------
        self.tf_declination = ft.TextField(
            label=t("gui.declination"), width=150, dense=True,
        )
        self.btn_apply_declination = ft.Button(t("gui.apply"))
        self.sw_true_north = ft.Switch(label=t("gui.use_true_north"), value=False)

        # -- Log ------------------------------------------------------------
        self.heading_log_list = ft.ListView(height=220, spacing=2)
        self.btn_clear_log = ft.IconButton(
            icon=ft.Icons.DELETE_SWEEP, tooltip=t("gui.clear_log"),
        )
        self.btn_export_log = ft.IconButton(
            icon=ft.Icons.DOWNLOAD, tooltip=t("gui.export_log"),
        )

        # System log console
        self.log_list = ft.ListView(height=80, spacing=2, auto_scroll=True)

        # -- Toolbar --------------------------------------------------------
        self.btn_settings = ft.IconButton(
            icon=ft.Icons.SETTINGS, tooltip=t("gui.open_settings"), icon_size=24,
        )
        self.btn_calibrate = ft.IconButton(
            icon=ft.Icons.EXPLORE, tooltip=t("gui.calibrate"), icon_size=24,
        )
        self.btn_diagnostics = ft.IconButton(
            icon=ft.Icons.HEALTH_AND_SAFETY, tooltip=t("gui.run_diagnostics"),
            icon_size=24,
        )
        self.btn_help = ft.IconButton(
            icon=ft.Icons.HELP_OUTLINE, tooltip=t("gui.help"), icon_size=24,
        )

        self._layout = self._build_layout()
        if auto_mount:
            self.mount()

    # ===================================================================
    # Layout
    # ===================================================================
    def _build_layout(self) -> ft.Control:
        """Assemble the dashboard layout."""

        def _row(label: str, value: ft.Text) -> ft.Row:
            return ft.Row([ft.Text(label, size=11), value],
                          alignment=ft.MainAxisAlignment.SPACE_BETWEEN)

        compass_card = _card(ft.Column([
            ft.Container(content=self.gesture, alignment=ft.Alignment(0, 0)),
            ft.Text(t("gui.drag_hint"), size=10, color=self._theme["muted"]),
        ], horizontal_alignment=ft.CrossAxisAlignment.CENTER, spacing=4))

        readout_card = _card(ft.Column([
            ft.Text(t("gui.readout"), weight=ft.FontWeight.BOLD, size=11,
                    color=self._theme["heading"]),
            self.lbl_heading,
            self.lbl_direction,
            _row(t("gui.direction"), self.lbl_cardinal),
            _row(t("gui.accuracy"), self.lbl_accuracy),
            _row(t("gui.mode"), self.lbl_mode),
        ], spacing=4))

        correction_card = _card(ft.Column([
            ft.Text(t("gui.correction"), weight=ft.FontWeight.BOLD, size=11,
                    color=self._theme["heading"]),
            ft.Row([self.tf_declination, self.btn_apply_declination]),
            self.sw_true_north,
        ], spacing=6))

        log_card = _card(ft.Column([
            ft.Row([
                ft.Text(t("gui.heading_log"), weight=ft.FontWeight.BOLD, size=11,
                        color=self._theme["heading"]),
                ft.Row([self.btn_export_log, self.btn_clear_log], spacing=0),
            ], alignment=ft.MainAxisAlignment.SPACE_BETWEEN),
            self.heading_log_list,
        ], spacing=4), expand=True)

        toolbar = ft.Row([
            ft.Text(t("app.title"), size=18, weight=ft.FontWeight.BOLD,
                    color=self._theme["heading"]),
            ft.Row([self.btn_calibrate, self.btn_settings, self.btn_diagnostics,
                    self.btn_help], spacing=0),
        ], alignment=ft.MainAxisAlignment.SPACE_BETWEEN)

        return ft.Column([
            toolbar,
            self.lbl_status,
            ft.Row([
                compass_card,
                ft.Column([readout_card, correction_card], spacing=8, expand=True),
                log_card,
            ], vertical_alignment=ft.CrossAxisAlignment.START, expand=True),
            _card(ft.Column([
                ft.Text(t("gui.system_log"), size=10, color=self._theme["muted"]),
                self.log_list,
            ], spacing=2)),
        ], expand=True, spacing=8)

    def mount(self) -> None:
        """Add the dashboard to the page."""
        self.page.add(self._layout)

    # ===================================================================
    # Compass drawing
    # ===================================================================
    @staticmethod
    def _compass_shapes(angle: float, density: int) -> list:
        """Return the canvas shapes for the rose, ticks and needle."""
        theme = THEME_DARK
        shapes: list = [cv.Circle(
            _CX, _CY, _R,
            paint=ft.Paint(color=theme["rose"], stroke_width=2,
                           style=ft.PaintingStyle.STROKE),
        )]

        outer = _R - 24 * _SCALE
        for tick in tick_angles(density):
            tick = float(tick)
            major = tick % MAJOR_TICK_STEP == 0
            inner = _R - (48 if major else 34) * _SCALE
            x1, y1 = _polar(tick, outer)
            x2, y2 = _polar(tick, inner)
            shapes.append(cv.Line(
                x1, y1, x2, y2,
                paint=ft.Paint(
                    color=theme["tick_major"] if major else theme["tick_minor"],
                    stroke_width=3 if major else 1,
                    stroke_cap=ft.StrokeCap.ROUND,
                ),
            ))
            if major and tick % 90 != 0:
                lx, ly = _polar(tick, 156 * _SCALE)
                shapes.append(cv.Text(
                    x=lx, y=ly, value=str(int(tick)),
                    style=ft.TextStyle(size=10, color=theme["tick_label"]),
                    alignment=ft.Alignment(0, 0),
                ))

        for label, tick in (("N", 0), ("E", 90), ("S", 180), ("W", 270)):
            lx, ly = _polar(tick, 150 * _SCALE)
            shapes.append(cv.Text(
                x=lx, y=ly, value=label,
                style=ft.TextStyle(size=16, weight=ft.FontWeight.BOLD,
                                   color=theme["heading"]),
                alignment=ft.Alignment(0, 0),
            ))

        # Needle: north half red, south half grey
        tip_x, tip_y = _polar(angle, 120 * _SCALE)
        tail_x, tail_y = _polar(angle + 180, 90 * _SCALE)
        shapes.append(cv.Line(
            _CX, _CY, tip_x, tip_y,
            paint=ft.Paint(color=theme["needle_north"], stroke_width=5,
                           stroke_cap=ft.StrokeCap.ROUND),
        ))
        shapes.append(cv.Line(
            _CX, _CY, tail_x, tail_y,
            paint=ft.Paint(color=theme["needle_south"], stroke_width=5,
                           stroke_cap=ft.StrokeCap.ROUND),
        ))
        shapes.append(cv.Circle(_CX, _CY, 6, paint=ft.Paint(color=theme["heading"])))
        return shapes

    def draw_needle(self, angle: float) -> None:
        """Rotate the needle to *angle* degrees."""
        self._needle_angle = angle
        self.compass_canvas.shapes = self._compass_shapes(angle, self._tick_density)

    def build_ticks(self, density: int) -> None:
        """Redraw the rose with *density* ticks."""
        self._tick_density = density
        self.compass_canvas.shapes = self._compass_shapes(self._needle_angle, density)

    # ===================================================================
    # Readouts and status
    # ===================================================================
    def show_readout(self, readout) -> None:
        """Show a :class:`readout.Readout` in the readout card."""
        self.lbl_heading.value = readout.text
        self.lbl_direction.value = readout.cardinal
        self.lbl_cardinal.value = readout.cardinal
        self.lbl_accuracy.value = readout.accuracy
        self.lbl_mode.value = readout.mode

    def set_status(self, text: str) -> None:
        self.lbl_status.value = t("status.prefix").format(text=text)

    def set_controls(self, declination: float, use_true_north: bool) -> None:
        """Populate the correction controls from restored state."""
        self.tf_declination.value = f"{declination:g}" if declination else ""
        self.sw_true_north.value = use_true_north

    def flag_declination_error(self) -> None:
        """Briefly mark the declination field as invalid."""
        self.tf_declination.border_color = COLOR_ERROR
        self.batch_update()
        timer = threading.Timer(DECLINATION_ERROR_SECONDS, self._clear_declination_error)
        timer.daemon = True
        timer.start()

    def _clear_declination_error(self) -> None:
        self.tf_declination.border_color = None
        self.batch_update()

    # ===================================================================
    # Heading log
    # ===================================================================
    def render_log(self, entries: Sequence) -> None:
        """Rebuild the heading log list from newest-first *entries*."""
        rows = []
        for index, entry in enumerate(entries):
            local = entry.timestamp.astimezone()
            rows.append(ft.Container(
                content=ft.Row([
                    ft.Text(local.strftime("%Y-%m-%d %H:%M:%S"), size=11,
                            font_family="RobotoMono", color=self._theme["muted"]),
                    ft.Text(f"{entry.heading:g}° — {entry.cardinal}", size=12,
                            font_family="RobotoMono", color=self._theme["heading"]),
                    ft.Text(entry.source_mode, size=11, color=self._theme["muted"]),
                ], alignment=ft.MainAxisAlignment.SPACE_BETWEEN),
                padding=4,
                border_radius=6,
                data=index,
                on_click=self._on_entry_click,
            ))
        self.heading_log_list.controls = rows

    def _on_entry_click(self, e) -> None:
        index = e.control.data
        for row in self.heading_log_list.controls:
            row.bgcolor = self._theme["pinned"] if row is e.control else None
        if self.on_pin_entry is not None:
            self.on_pin_entry(index)

    def confirm_clear(self, on_confirm: Callable[[], None]) -> None:
        """Ask before clearing the heading log."""
        def _yes(e):
            self._close_dialog(dlg)
            on_confirm()

        dlg = ft.AlertDialog(
            modal=True,
            title=ft.Text(t("gui.confirm_clear_title")),
            content=ft.Text(t("gui.confirm_clear_body")),
            actions=[
                ft.TextButton(t("gui.cancel"), on_click=lambda e: self._close_dialog(dlg)),
                ft.Button(t("gui.clear_log"), on_click=_yes),
            ],
        )
        self.page.overlay.append(dlg)
        dlg.open = True
        self.batch_update()

    # ===================================================================
    # System log console
    # ===================================================================
    def batch_update(self) -> None:
        """Call page.update() once. Use after multiple property changes."""
        try:
            self.page.update()
        except Exception:
            logger.debug("page.update() failed", exc_info=True)

    def write_log(self, message: str) -> None:
        """Append a timestamped message to the system log console."""
        timestamp = datetime.datetime.now().strftime("%H:%M:%S")
        entry = ft.Text(f"[{timestamp}] {message}", size=10,
                        font_family="RobotoMono", color="#CCCCCC")
        self.log_list.controls.append(entry)
        # Keep at most 200 lines
        if len(self.log_list.controls) > 200:
            self.log_list.controls.pop(0)
        self.batch_update()

    # ===================================================================
    # Diagnostics dialog (with loading state)
    # ===================================================================
    def show_help(self) -> ft.AlertDialog:
        """Open the usage help dialog."""
        dlg = ft.AlertDialog(
            title=ft.Text(t("gui.help_title")),
            content=ft.Text(t("gui.help_body"), width=360),
        )
        dlg.actions = [
            ft.TextButton(t("gui.close"), on_click=lambda e: self._close_dialog(dlg)),
        ]
        self.page.overlay.append(dlg)
        dlg.open = True
        self.batch_update()
        return dlg

    def show_diagnostics_loading(self) -> ft.AlertDialog:
        """Show a diagnostics dialog with a loading indicator immediately.

        Returns the dialog so the caller can replace its content later.
        """
        dlg = ft.AlertDialog(
            title=ft.Text(t("gui.diagnostics_title")),
            content=ft.Column([
                ft.ProgressRing(),
                ft.Text(t("gui.diagnostics_running")),
            ], tight=True, horizontal_alignment=ft.CrossAxisAlignment.CENTER),
        )
        dlg.actions = [
            ft.TextButton(t("gui.close"), on_click=lambda e: self._close_dialog(dlg)),
        ]
        self.page.overlay.append(dlg)
        dlg.open = True
        self.batch_update()
        return dlg

    def show_diagnostics(self, report, dlg=None) -> None:
        """Open (or update) a dialog showing the diagnostics report.

        Args:
            report: A :class:`diagnostics.DiagReport` instance.
            dlg:    Optional pre-existing loading dialog to update.
        """
        from diagnostics import Status

        _STATUS_ICONS = {
            Status.OK: ("✓", "#2ECC71"),
            Status.WARNING: ("⚠", "#F1C40F"),
            Status.ERROR: ("✗", "#E74C3C"),
            Status.INFO: ("ℹ", "#3498DB"),
        }

        rows: list = []
        for r in report.results:
            icon_char, icon_color = _STATUS_ICONS.get(r.status, ("?", "#888888"))
            parts = [
                ft.Text(icon_char, color=icon_color, size=14,
                        weight=ft.FontWeight.BOLD),
                ft.Text(f"[{r.category}] {r.name}", size=12,
                        weight=ft.FontWeight.BOLD),
                ft.Text(r.message, size=11, color="#CCCCCC"),
            ]
            if r.suggestion:
                parts.append(ft.Text(f"→ {r.suggestion}", size=10, italic=True,
                                     color="#F1C40F"))
            rows.append(ft.Container(
                content=ft.Column(parts, spacing=2),
                padding=6,
                border=ft.Border(bottom=ft.BorderSide(1, "#333333")),
            ))

        result_content = ft.Container(
            content=ft.Column(
                [ft.Text(f"Diagnostics: {report.summary}  ({report.duration_s}s)",
                         size=13, weight=ft.FontWeight.BOLD)] + rows,
                scroll=ft.ScrollMode.AUTO,
                spacing=4,
            ),
            width=520,
            height=400,
        )

        if dlg is not None:
            dlg.content = result_content
        else:
            dlg = ft.AlertDialog(
                title=ft.Text(t("gui.diagnostics_title")),
                content=result_content,
                actions=[
                    ft.TextButton(t("gui.close"),
                                  on_click=lambda e: self._close_dialog(dlg)),
                ],
            )
            self.page.overlay.append(dlg)
            dlg.open = True
        self.batch_update()

    def _close_dialog(self, dlg: ft.AlertDialog) -> None:
        """Close an open dialog."""
        dlg.open = False
        self.batch_update()
