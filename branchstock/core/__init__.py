from .config import settings
from .database import engine, SessionLocal, get_db, Base, atomic, run_atomic

__all__ = ["settings", "engine", "SessionLocal", "get_db", "Base", "atomic", "run_atomic"]
