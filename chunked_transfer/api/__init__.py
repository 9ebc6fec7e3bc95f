"""API module exports"""
from .endpoints import router, get_upload_service, get_current_user

__all__ = ["router", "get_upload_service", "get_current_user"]
