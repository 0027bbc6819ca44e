"""Global pytest configuration (non-GUI fixtures only)."""

import os

import pytest

pytest_plugins = ["tests.fixtures.db"]

# Qt worker tests run headless
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope="session")
def qapp():
    """Session-wide QCoreApplication for worker signal tests."""
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app
