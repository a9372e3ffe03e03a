"""Lightweight internationalisation module for Advanced Compass.

Thread-safe, dictionary-based i18n that ships English and German
translations for every UI string used by the application.

Usage::

    from localization import t, set_language, get_language

    set_language("de")
    print(t("gui.heading"))                  # "KURS"
    print(t("status.declination_set").format(value=2.5))
"""

from __future__ import annotations

import threading
from typing import Dict

# ---------------------------------------------------------------------------
# Internal state (thread-safe)
# ---------------------------------------------------------------------------
_lock = threading.Lock()
_current_language: str = "en"

# ---------------------------------------------------------------------------
# Translation tables
# ---------------------------------------------------------------------------
_translations: Dict[str, Dict[str, str]] = {
    "en": {
        # ── Window ───────────────────────────────────────────────────
        "app.title":                        "Advanced Compass",

        # ── GUI labels ───────────────────────────────────────────────
        "gui.heading":                      "HEADING",
        "gui.direction":                    "DIRECTION",
        "gui.accuracy":                     "ACCURACY",
        "gui.mode":                         "MODE",
        "gui.readout":                      "READOUT",
        "gui.correction":                   "CORRECTION",
        "gui.declination":                  "Declination (°)",
        "gui.apply":                        "Apply",
        "gui.use_true_north":               "Use true north",
        "gui.heading_log":                  "HEADING LOG",
        "gui.system_log":                   "SYSTEM LOG",
        "gui.clear_log":                    "Clear log",
        "gui.export_log":                   "Export CSV",
        "gui.open_settings":                "Settings",
        "gui.run_diagnostics":              "Run Diagnostics",
        "gui.diagnostics_title":            "System Diagnostics",
        "gui.diagnostics_running":          "Running diagnostics …",
        "gui.close":                        "Close",
        "gui.confirm_clear_title":          "Clear log?",
        "gui.confirm_clear_body":           "All logged headings will be removed.",
        "gui.cancel":                       "Cancel",
        "gui.drag_hint":                    "Drag on the compass to simulate a heading",
        "gui.calibrate":                    "Calibrate",
        "gui.help":                         "Help",
        "gui.help_title":                   "How to use the compass",
        "gui.help_body":                    "Allow motion access on mobile devices. On the desktop, drag on the compass to simulate a heading; double-click logs the current heading.",

        # ── Status line ──────────────────────────────────────────────
        "status.prefix":                    "Status: {text}",
        "status.waiting":                   "waiting for heading",
        "status.sensor":                    "using orientation sensor",
        "status.simulated":                 "simulated (pointer)",
        "status.settings_saved":            "settings saved",
        "status.declination_set":           "declination set to {value}°",
        "status.true_north":                "using true north",
        "status.magnetic_north":            "using magnetic north",
        "status.log_cleared":               "log cleared",
        "status.pinned":                    "pinned {heading}° ({cardinal})",
        "status.export_empty":              "no log entries to export",
        "status.exported":                  "log exported to {path}",
        "status.export_failed":             "export failed",
        "status.serial_listening":          "listening to serial compass on {port}",
        "status.serial_unavailable":        "serial compass unavailable – use pointer simulation",
        "status.replaying":                 "replaying {name}",
        "status.replay_unavailable":        "recording unavailable – use pointer simulation",
        "status.calibrating":               "calibrating... rotate device gently",
        "status.calibration_done":          "calibration done – waiting",

        # ── Settings dialog ──────────────────────────────────────────
        "settings.window_title":            "Compass Settings",
        "settings.units":                   "Units",
        "settings.units_deg":               "Degrees",
        "settings.units_mil":               "Mils (6400)",
        "settings.tick_density":            "Tick density",
        "settings.log_size":                "Log size",
        "settings.save":                    "Save",
        "settings.cancel":                  "Cancel",
    },

    "de": {
        # ── Fenster ──────────────────────────────────────────────────
        "app.title":                        "Erweiterter Kompass",

        # ── GUI-Beschriftungen ───────────────────────────────────────
        "gui.heading":                      "KURS",
        "gui.direction":                    "RICHTUNG",
        "gui.accuracy":                     "GENAUIGKEIT",
        "gui.mode":                         "MODUS",
        "gui.readout":                      "ANZEIGE",
        "gui.correction":                   "KORREKTUR",
        "gui.declination":                  "Missweisung (°)",
        "gui.apply":                        "Übernehmen",
        "gui.use_true_north":               "Geografisch Nord verwenden",
        "gui.heading_log":                  "KURSPROTOKOLL",
        "gui.system_log":                   "SYSTEMPROTOKOLL",
        "gui.clear_log":                    "Protokoll leeren",
        "gui.export_log":                   "CSV exportieren",
        "gui.open_settings":                "Einstellungen",
        "gui.run_diagnostics":              "Diagnose starten",
        "gui.diagnostics_title":            "Systemdiagnose",
        "gui.diagnostics_running":          "Diagnose läuft …",
        "gui.close":                        "Schließen",
        "gui.confirm_clear_title":          "Protokoll leeren?",
        "gui.confirm_clear_body":           "Alle protokollierten Kurse werden entfernt.",
        "gui.cancel":                       "Abbrechen",
        "gui.drag_hint":                    "Auf dem Kompass ziehen, um einen Kurs zu simulieren",
        "gui.calibrate":                    "Kalibrieren",
        "gui.help":                         "Hilfe",
        "gui.help_title":                   "Bedienung des Kompasses",
        "gui.help_body":                    "Auf Mobilgeräten den Zugriff auf Bewegungssensoren erlauben. Am Desktop auf dem Kompass ziehen, um einen Kurs zu simulieren; Doppelklick protokolliert den aktuellen Kurs.",

        # ── Statuszeile ──────────────────────────────────────────────
        "status.prefix":                    "Status: {text}",
        "status.waiting":                   "warte auf Kurs",
        "status.sensor":                    "Lagesensor aktiv",
        "status.simulated":                 "simuliert (Zeiger)",
        "status.settings_saved":            "Einstellungen gespeichert",
        "status.declination_set":           "Missweisung auf {value}° gesetzt",
        "status.true_north":                "geografisch Nord",
        "status.magnetic_north":            "magnetisch Nord",
        "status.log_cleared":               "Protokoll geleert",
        "status.pinned":                    "{heading}° ({cardinal}) angeheftet",
        "status.export_empty":              "keine Einträge zum Exportieren",
        "status.exported":                  "Protokoll exportiert nach {path}",
        "status.export_failed":             "Export fehlgeschlagen",
        "status.serial_listening":          "serieller Kompass an {port} aktiv",
        "status.serial_unavailable":        "serieller Kompass nicht verfügbar – Zeigersimulation nutzen",
        "status.replaying":                 "Wiedergabe von {name}",
        "status.replay_unavailable":        "Aufzeichnung nicht verfügbar – Zeigersimulation nutzen",
        "status.calibrating":               "Kalibrierung ... Gerät langsam drehen",
        "status.calibration_done":          "Kalibrierung abgeschlossen – warte",

        # ── Einstellungsdialog ───────────────────────────────────────
        "settings.window_title":            "Kompass-Einstellungen",
        "settings.units":                   "Einheiten",
        "settings.units_deg":               "Grad",
        "settings.units_mil":               "Strich (6400)",
        "settings.tick_density":            "Skalendichte",
        "settings.log_size":                "Protokollgröße",
        "settings.save":                    "Speichern",
        "settings.cancel":                  "Abbrechen",
    },
}

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def set_language(lang: str) -> None:
    """Set the active language (e.g. ``"en"`` or ``"de"``)."""
    if lang not in _translations:
        raise ValueError(
            f"Unsupported language '{lang}'. "
            f"Available: {', '.join(sorted(_translations))}"
        )
    global _current_language
    with _lock:
        _current_language = lang


def get_language() -> str:
    """Return the currently active language code."""
    with _lock:
        return _current_language


def available_languages() -> list:
    """Return the sorted list of supported language codes."""
    return sorted(_translations)


def t(key: str) -> str:
    """Return the translated string for *key* in the current language.

    If the key is missing from the active language table the English
    fallback is tried.  If the key is not found at all the raw *key*
    string is returned so that missing translations are obvious in the UI
    without crashing the application.
    """
    with _lock:
        lang = _current_language

    table = _translations.get(lang, {})
    if key in table:
        return table[key]

    # Fallback to English
    en_table = _translations.get("en", {})
    if key in en_table:
        return en_table[key]

    return key
