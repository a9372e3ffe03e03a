"""
Advanced Compass - Heading Smoothing, Correction and Logging
Serial Compass Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Reads headings from a serial compass module via pyserial.  Understands
NMEA heading sentences (HDG / HDM / HDT) and the plain ``ALPHA`` line
format of simple orientation boards.  Includes automatic reconnection
on IO errors.
"""

import logging
import time
from functools import reduce
from typing import Optional

import serial

from heading_source import GenericOrientationReading, PlatformCompassReading, Reading

logger = logging.getLogger(__name__)

NMEA_HEADING_SENTENCES = ("HDG", "HDM", "HDT")


def _nmea_checksum_ok(sentence: str) -> bool:
    """Verify the ``*hh`` checksum of an NMEA sentence, when present."""
    if "*" not in sentence:
        return True
    body, _, checksum = sentence[1:].partition("*")
    try:
        expected = int(checksum[:2], 16)
    except ValueError:
        return False
    actual = reduce(lambda acc, ch: acc ^ ord(ch), body, 0)
    return actual == expected


def parse_sensor_line(line: str) -> Optional[Reading]:
    """Parse one line from the compass module.

    Supported formats::

        $HCHDG,123.4,,,5.1,E*hh   -> PlatformCompassReading(123.4)
        $HCHDM,123.4,M*hh         -> PlatformCompassReading(123.4)
        ALPHA 123.4 ABS           -> GenericOrientationReading(123.4, True)

    Returns ``None`` for anything else (including empty heading fields
    and checksum mismatches).
    """
    line = line.strip()
    if not line:
        return None

    if line.startswith("$"):
        if not _nmea_checksum_ok(line):
            logger.debug("NMEA checksum mismatch: %s", line)
            return None
        fields = line[1:].split("*", 1)[0].split(",")
        if len(fields) < 2 or fields[0][-3:] not in NMEA_HEADING_SENTENCES:
            return None
        try:
            return PlatformCompassReading(heading=float(fields[1]))
        except ValueError:
            return None

    parts = line.split()
    if parts[0].upper() == "ALPHA" and len(parts) >= 2:
        try:
            alpha = float(parts[1])
        except ValueError:
            return None
        absolute = len(parts) > 2 and parts[2].upper() == "ABS"
        return GenericOrientationReading(alpha=alpha, absolute=absolute)

    logger.debug("Ignoring unrecognised sensor line: %s", line)
    return None


class SerialCompass:
    """Serial compass reader with auto-reconnect."""

    RECONNECT_DELAY = 5.0  # seconds between reconnect attempts

    def __init__(self, port: str, baud_rate: int = 9600, timeout: float = 1.0,
                 settle_time: float = 2.0):
        """
        Initialize the serial compass.

        Args:
            port: Serial port name (e.g., 'COM4' or '/dev/ttyUSB0')
            baud_rate: Communication baud rate
            timeout: Read timeout in seconds
            settle_time: Delay after opening the port while the board resets
        """
        self.port = port
        self.baud_rate = baud_rate
        self.timeout = timeout
        self.settle_time = settle_time
        self.ser = None
        self.connected = False
        self._last_reconnect_attempt = 0.0

    def connect(self) -> bool:
        """
        Connect to the serial port.

        Returns:
            True if successful, False otherwise
        """
        try:
            logger.info("Connecting to serial compass on %s", self.port)
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                timeout=self.timeout
            )

            if self.settle_time > 0:
                time.sleep(self.settle_time)

            self.connected = True
            logger.info("Serial compass on %s connected", self.port)
            return True
        except serial.SerialException as e:
            logger.error("Failed to connect to serial compass: %s", e)
            self.connected = False
            return False

    def disconnect(self) -> None:
        """Disconnect from the serial port."""
        if self.ser and self.connected:
            try:
                self.ser.close()
                logger.info("Serial compass disconnected")
            except serial.SerialException as e:
                logger.error("Error disconnecting serial compass: %s", e)
        self.connected = False

    def _attempt_reconnect(self) -> bool:
        """Try to re-establish the serial connection with backoff.

        Returns:
            True if reconnection succeeded, False otherwise.
        """
        now = time.time()
        if now - self._last_reconnect_attempt < self.RECONNECT_DELAY:
            return False
        self._last_reconnect_attempt = now

        logger.warning("Attempting serial compass reconnect on %s …", self.port)
        if self.ser:
            try:
                self.ser.close()
            except serial.SerialException:
                logger.debug("Closing stale port failed", exc_info=True)
        return self.connect()

    def read_line(self) -> Optional[str]:
        """Read one line from the port, or ``None`` on timeout or error."""
        if not self.connected:
            self._attempt_reconnect()
            return None

        try:
            raw = self.ser.readline()
        except serial.SerialException as e:
            logger.error("Serial IO error reading compass: %s", e)
            self.connected = False
            self._attempt_reconnect()
            return None

        if not raw:
            return None
        return raw.decode("ascii", errors="replace").strip()

    def read_reading(self) -> Optional[Reading]:
        """Read and parse one line; ``None`` when nothing usable arrived."""
        line = self.read_line()
        if line is None:
            return None
        return parse_sensor_line(line)
