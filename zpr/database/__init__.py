"""Database module for review persistence."""

from .db import SessionLocal, engine, init_db
from .store import ReviewStore

__all__ = ["engine", "SessionLocal", "init_db", "ReviewStore"]
