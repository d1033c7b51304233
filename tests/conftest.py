"""Shared test fixtures for DiaHelper tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DEFAULT_PRIVACY_MODE", "strict")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


# ---------------------------------------------------------------------------
# Sample health metrics
# ---------------------------------------------------------------------------

@pytest.fixture
def high_risk_metrics() -> dict[str, float]:
    """A clearly elevated profile (glucose and BMI far above the norms)."""
    return {
        "age": 65,
        "bmi": 38,
        "glucose": 190,
        "blood_pressure": 95,
        "pregnancies": 5,
        "skin_thickness": 35,
        "insulin": 200,
        "diabetes_pedigree_function": 1.2,
        "sleep_hours": 5,
    }


@pytest.fixture
def average_metrics() -> dict[str, float]:
    """Every feature at its population mean and sleep at the optimum."""
    return {
        "age": 45,
        "bmi": 28,
        "glucose": 105,
        "blood_pressure": 85,
        "pregnancies": 3,
        "skin_thickness": 25,
        "insulin": 100,
        "diabetes_pedigree_function": 0.5,
        "sleep_hours": 7,
    }


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def prediction_db():
    """Create an in-memory PredictionDatabase for testing."""
    from diahelper.core.storage.database import PredictionDatabase

    db = PredictionDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from diahelper.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def prediction_repository(prediction_db, field_encryptor):
    """Create a PredictionRepository backed by in-memory SQLite."""
    from diahelper.core.storage.repository import PredictionRepository

    return PredictionRepository(prediction_db, field_encryptor)


@pytest.fixture
def audit_logger(prediction_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from diahelper.core.audit.logger import AuditLogger

    return AuditLogger(prediction_db)
