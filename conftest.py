import pytest
from fastapi.testclient import TestClient

from safety_analytics.api.main import create_app
from safety_analytics.core.config import Settings
from safety_analytics.utils.security import limiter

CRIME_CSV = """latitude,longitude,type
26.85,80.88,Theft
26.86,80.89,Assault
200,80,Theft
abc,80,Robbery
26.8501,80.8801,Vehicle Theft
26.90,80.95,
"""


@pytest.fixture
def crime_csv(tmp_path):
    """A small crime CSV with four valid rows and two invalid ones."""
    path = tmp_path / "crime-data.csv"
    path.write_text(CRIME_CSV)
    return str(path)


@pytest.fixture
def settings(crime_csv):
    return Settings(crime_data_path=crime_csv, seed_demo_users=False)


@pytest.fixture
def app(settings):
    """
    A fresh application with its own stores for each test.
    """
    return create_app(settings)


@pytest.fixture
def client(app):
    """
    FastAPI TestClient fixture; entering it runs the startup load.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """The limiter is shared by every app instance, so clear its counters between tests."""
    limiter.reset()
    yield
    limiter.reset()
