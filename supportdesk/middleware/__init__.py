# supportdesk/middleware/__init__.py
from .error_handler import register_error_handlers

__all__ = [
    "register_error_handlers",
]
