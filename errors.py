"""
Error types raised by the service layer.

The HTTP layer in main.py maps each of these onto a status code and the
standard `{success: false, error}` envelope.
"""
from typing import Any, Dict, List, Optional


class NotFoundError(Exception):
    status = 404


class RecordValidationError(Exception):
    status = 400

    def __init__(self, message: str = "Validation failed", details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []
