"""
Advanced Compass - Heading Smoothing, Correction and Logging
Settings GUI Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Provides a Flet AlertDialog-based settings panel for the display units,
the tick density of the compass rose and the heading log size.
"""

import logging
from typing import Callable

import flet as ft

from localization import t
from readout import UNITS_DEGREES, UNITS_MILS

logger = logging.getLogger(__name__)


def _section_header(text: str) -> ft.Container:
    """Return a styled section header for settings groups."""
    return ft.Container(
        content=ft.Text(text, size=12, weight=ft.FontWeight.BOLD,
                        color="#00B4D8"),
        padding=ft.Padding(0, 8, 0, 4),
        border=ft.Border(bottom=ft.BorderSide(1, "#333333")),
    )


def show_settings_dialog(
    page: ft.Page,
    settings,
    on_submit: Callable[[str, str, str], None],
) -> ft.AlertDialog:
    """Open the settings dialog populated from *settings*.

    Args:
        page: The Flet page to attach the dialog to.
        settings: Current :class:`compass_state.Settings`.
        on_submit: Called with the raw ``(units, tick_density, log_size)``
            form values on save.  Parsing and validation happen in the
            event reducer, not here.

    Returns:
        The opened dialog.
    """
    dd_units = ft.Dropdown(
        label=t("settings.units"),
        options=[
            ft.dropdown.Option(UNITS_DEGREES, t("settings.units_deg")),
            ft.dropdown.Option(UNITS_MILS, t("settings.units_mil")),
        ],
        value=settings.units,
    )
    tf_tick_density = ft.TextField(
        label=t("settings.tick_density"),
        value=str(settings.tick_density),
        keyboard_type=ft.KeyboardType.NUMBER,
    )
    tf_log_size = ft.TextField(
        label=t("settings.log_size"),
        value=str(settings.log_size),
        keyboard_type=ft.KeyboardType.NUMBER,
    )

    def _on_save(e):
        logger.debug("Settings submitted: units=%s ticks=%s log=%s",
                     dd_units.value, tf_tick_density.value, tf_log_size.value)
        on_submit(dd_units.value, tf_tick_density.value, tf_log_size.value)
        dialog.open = False
        page.update()

    def _on_cancel(e):
        dialog.open = False
        page.update()

    dialog = ft.AlertDialog(
        modal=True,
        title=ft.Text(t("settings.window_title")),
        content=ft.Container(
            content=ft.Column([
                _section_header(t("gui.readout")),
                dd_units,
                tf_tick_density,
                _section_header(t("gui.heading_log")),
                tf_log_size,
            ], tight=True, spacing=8),
            width=360,
        ),
        actions=[
            ft.TextButton(t("settings.cancel"), on_click=_on_cancel),
            ft.Button(t("settings.save"), on_click=_on_save),
        ],
        actions_alignment=ft.MainAxisAlignment.END,
    )

    page.overlay.append(dialog)
    dialog.open = True
    page.update()
    return dialog
