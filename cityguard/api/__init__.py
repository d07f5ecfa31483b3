"""
API routers for CityGuard.
"""
from fastapi import APIRouter

from . import auth
from .errors import register_exception_handlers

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["auth"])

__all__ = ["router", "register_exception_handlers"]
