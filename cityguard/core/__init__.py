"""
Core functionality for CityGuard: settings, the error taxonomy and the
password/token primitives.
"""
from .config import Settings, get_settings
from .security import PasswordHasher, TokenService, TokenType, hash_token

__all__ = [
    "Settings",
    "get_settings",
    "PasswordHasher",
    "TokenService",
    "TokenType",
    "hash_token",
]
