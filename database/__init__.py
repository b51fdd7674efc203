# Database package
from .connection import get_async_engine, get_session_factory, ping_database
from .models import Base, Profile, AttendanceRecord

__all__ = ["get_async_engine", "get_session_factory", "ping_database", "Base", "Profile", "AttendanceRecord"]
