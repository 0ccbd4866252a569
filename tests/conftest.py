from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"

# The app reads settings at import time, so point it at throwaway storage first.
os.environ["SQLITE_PATH"] = str(Path(tempfile.mkdtemp(prefix="orderflow-tests-")) / "conversations.db")
os.environ["RESTAURANT_PROFILE_PATH"] = str(FIXTURES_DIR / "restaurant.json")
os.environ["ORCHESTRATION_MODE"] = "plan"
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("ADDRESS_VALIDATION_URL", None)


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return FIXTURES_DIR
