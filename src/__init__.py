"""
Advanced Compass - Heading Smoothing, Correction and Logging
Package initialization

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.
"""

__version__ = "0.1.0"
__author__ = "Advanced Compass Development Team"
__description__ = "Smoothed compass heading display with declination correction and heading log"
