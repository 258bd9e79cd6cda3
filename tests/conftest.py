from pathlib import Path

import pytest
import structlog


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any configure_logging() a test performed."""
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()
