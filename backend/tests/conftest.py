"""
conftest.py — Shared pytest fixtures for the efficiency audit test suite.

No database or external service fixtures are defined here.  Engine tests are
pure unit tests over plain dict blocks; API tests drive the FastAPI app
in-process through TestClient.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def shadow_engine():
    """ShadowAuditEngine with no rate tables: labour 85, equipment 150."""
    from app.services.shadow_audit_engine import ShadowAuditEngine
    return ShadowAuditEngine()


@pytest.fixture(scope="session")
def rated_shadow_engine():
    """
    ShadowAuditEngine with explicit rate tables.

    Labour:    Welder 120, Labourer 60
    Equipment: Sideboom 250, Pickup 40
    """
    from app.services.shadow_audit_engine import ShadowAuditEngine
    return ShadowAuditEngine(
        labour_rates={"Welder": 120.0, "Labourer": 60.0},
        equipment_rates={"Sideboom": 250.0, "Pickup": 40.0},
    )


@pytest.fixture(scope="session")
def reliability_engine(shadow_engine):
    from app.services.reliability_engine import ReliabilityEngine
    return ReliabilityEngine(shadow_engine)


@pytest.fixture
def portfolio_engine():
    """Fresh PortfolioEngine per test so the summary cache starts empty."""
    from app.services.portfolio_engine import PortfolioEngine
    return PortfolioEngine()


@pytest.fixture(scope="session")
def health_scorer():
    """ReportHealthScorer with the default threshold (90)."""
    from app.services.health_score_engine import ReportHealthScorer
    return ReportHealthScorer()


@pytest.fixture
def api_client():
    from fastapi.testclient import TestClient
    from app.main import app
    with TestClient(app) as client:
        yield client


# ---------------------------------------------------------------------------
# Shared sample blocks
# ---------------------------------------------------------------------------

@pytest.fixture
def simple_labour_block():
    """One ACTIVE labour line: rt=8, ot=2, count=2 → 20 billed hours."""
    return {
        "id": "blk-labour",
        "activity_type": "Grading",
        "labour_entries": [
            {"classification": "Labourer", "rt": 8, "ot": 2, "count": 2, "production_status": "ACTIVE"},
        ],
        "equipment_entries": [],
    }


@pytest.fixture
def sync_delay_block():
    """One SYNC_DELAY equipment line: 10 hours × 1 → shadow 7."""
    return {
        "id": "blk-sync",
        "activity_type": "Ditch",
        "labour_entries": [],
        "equipment_entries": [
            {"type": "Backhoe", "hours": 10, "count": 1, "production_status": "SYNC_DELAY"},
        ],
    }


@pytest.fixture
def systemic_weather_block():
    """
    Labour rt=8 + equipment hours=8, both ACTIVE, under a block-wide
    MANAGEMENT_DRAG override for extreme weather.
    Burn rate = 85 + 150 = 235; value lost = 16 × 235 = 3760.
    """
    return {
        "id": "blk-weather",
        "activity_type": "Lower-in",
        "labour_entries": [
            {"classification": "Labourer", "rt": 8, "count": 1, "production_status": "ACTIVE"},
        ],
        "equipment_entries": [
            {"type": "Sideboom", "hours": 8, "count": 1, "production_status": "ACTIVE"},
        ],
        "systemic_delay": {"active": True, "status": "MANAGEMENT_DRAG", "reason": "extreme_weather"},
    }


@pytest.fixture
def access_quality_data():
    """All eight Access quality fields filled."""
    return {
        "accessWidth": 6,
        "surfaceCondition": "Good",
        "drainageCulverts": "Functional",
        "escStatus": "In Place",
        "mattingIntegrity": "Good",
        "gateFenceSecurity": "Secure",
        "cleaningStationActive": "Yes",
        "waterbarsFunctional": "Yes",
    }


@pytest.fixture(autouse=True)
def _reset_tracker():
    """Keep PerformanceTracker counters isolated between tests."""
    from app.services.perf_monitor import tracker
    tracker.reset()
    yield
    tracker.reset()
