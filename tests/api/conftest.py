import pytest
import random
import string
from fastapi.testclient import TestClient
from taskflow.dependencies import get_db
from taskflow.main import app
from taskflow.models import User

PASSWORD = "password123"

def get_random_string(length):
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))

def register_and_login(client, db, email, password=PASSWORD):
    """Register, verify through the emailed token and log in. Returns Bearer headers."""
    resp = client.post("/auth/register", json={"name": "Test User", "email": email, "password": password})
    assert resp.status_code == 201

    token = db.query(User).filter(User.email == email).first().email_token
    resp = client.get("/auth/verify-email", params={"token": token}, follow_redirects=False)
    assert resp.status_code in (302, 307)

    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200

    # Requests in tests authenticate with the header only
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}

@pytest.fixture
def api_client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

@pytest.fixture
def auth_headers(api_client, db_session):
    return register_and_login(api_client, db_session, f"user_{get_random_string(6)}@example.com")

@pytest.fixture
def other_headers(api_client, db_session):
    return register_and_login(api_client, db_session, f"other_{get_random_string(6)}@example.com")
