"""
Shared pytest fixtures for the RegenMark test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - owner: Pre-created vendor Owner
    - reviewer_headers / vendor_headers: identity headers for API calls
"""

import pytest

from regenmark import create_app
from regenmark.models import db as _db
from regenmark.models.owner import Owner
from regenmark.services.document_storage import LocalDocumentStorage, init_document_storage

VENDOR_USER = "vendor-1"
REVIEWER_USER = "reviewer-1"

EVIDENCE = {
    "name": "Carbon audit 2025",
    "file_name": "carbon-audit.pdf",
    "url": "/uploads/regenmarks/carbon-audit.pdf",
    "file_size": 2048,
    "mime_type": "application/pdf",
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db, tmp_path):
    """Per-test: open app context, rollback after test, recreate tables."""
    init_document_storage(app, LocalDocumentStorage(str(tmp_path / "uploads"), "/uploads/regenmarks"))
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def owner():
    """A committed vendor owner notified at VENDOR_USER."""
    o = Owner(name="Verde Textiles", kind="vendor", user_id=VENDOR_USER)
    _db.session.add(o)
    _db.session.commit()
    return o


@pytest.fixture()
def vendor_headers():
    return {"X-User-Id": VENDOR_USER, "X-User-Role": "vendor"}


@pytest.fixture()
def reviewer_headers():
    return {"X-User-Id": REVIEWER_USER, "X-User-Role": "reviewer"}
