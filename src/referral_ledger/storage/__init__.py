"""Database engine, session scope and declarative base."""

from referral_ledger.storage.db import Base, Database, db, get_db

__all__ = ["Base", "Database", "db", "get_db"]
