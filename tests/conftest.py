"""
Pytest configuration and shared fixtures.

Test environment variables are set before any dialogue import so the
engine and settings point at a throwaway SQLite file and upload directory.
"""

import os
import tempfile

import pytest

_TEST_ROOT = tempfile.mkdtemp(prefix="dialogue-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_ROOT, 'test.db')}")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TEST_ROOT, "uploads"))

# Clear settings cache before any app imports to ensure test env vars are used
from dialogue.config import get_settings  # noqa: E402
get_settings.cache_clear()

from dialogue import identity, models  # noqa: E402,F401
from dialogue.photos import PhotoIngestor  # noqa: E402
from dialogue.storage import Base, SessionLocal, engine  # noqa: E402


@pytest.fixture(scope="function")
def db():
    """Session on a fresh schema for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def alice(db):
    return identity.create_user(db, "alice", "hashed-1")


@pytest.fixture
def bob(db):
    return identity.create_user(db, "bob", "hashed-2")


@pytest.fixture
def carol(db):
    return identity.create_user(db, "carol", "hashed-3")


@pytest.fixture
def upload_dir(tmp_path):
    return str(tmp_path / "uploads")


@pytest.fixture
def ingestor(upload_dir):
    return PhotoIngestor(upload_dir, "/uploads/")
