#!/usr/bin/env python3
"""
Error types for the solar estimation service.

SolarGrindError
├── ValidationError   (400) bad input, never retried
├── NotFoundError     (404) unknown calculation id
├── ComputationError  (500) arithmetic produced NaN/Infinity
└── UpstreamError     location service failure (handled by fallback)
"""

from typing import Any, Dict, Optional


class SolarGrindError(Exception):
    """Base error carrying a human-readable message and an HTTP status"""

    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class ValidationError(SolarGrindError):
    status_code = 400


class NotFoundError(SolarGrindError):
    status_code = 404


class ComputationError(SolarGrindError):
    status_code = 500


class UpstreamError(SolarGrindError):
    status_code = 502
