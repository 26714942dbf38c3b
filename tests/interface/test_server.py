import pytest
from fastapi.testclient import TestClient

from levelsync.application.config import AppConfig
from levelsync.consts import VERSION
from levelsync.server import create_app


@pytest.fixture
def client():
    config = AppConfig(store_backend="memory", simulated_delay=0)
    with TestClient(create_app(config)) as c:
        yield c


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version(client):
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


def test_untouched_date(client):
    response = client.get("/dates/2024-03-01")

    assert response.status_code == 200
    data = response.json()
    assert data["stored"] is False
    assert [t["level"] for t in data["toggles"]] == [0] * 6
    assert data["toggles"][0]["label"] == "none"


def test_toggle_then_flush(client):
    response = client.post("/dates/2024-03-01/toggles/2")

    assert response.status_code == 200
    data = response.json()
    assert data["stored"] is True
    assert data["toggles"][2] == {"index": 2, "level": 1, "label": "reasonable"}

    queue = client.post("/queue/flush").json()
    assert queue["length"] == 0
    assert queue["status"] == "idle"


def test_set_level(client):
    response = client.put("/dates/2024-03-01/toggles/2", json={"level": 3})

    assert response.status_code == 200
    assert response.json()["toggles"][2]["label"] == "unreasonable"
    assert client.get("/dates/2024-03-01").json()["toggles"][2]["level"] == 3


@pytest.mark.parametrize(
    "method,path,body",
    [
        ("put", "/dates/2024-03-01/toggles/2", {"level": 4}),
        ("put", "/dates/2024-03-01/toggles/6", {"level": 1}),
        ("post", "/dates/2024-03-01/toggles/-1", None),
        ("get", "/dates/2024-13-01", None),
    ],
)
def test_invalid_input_is_422(client, method, path, body):
    kwargs = {"json": body} if body is not None else {}
    response = getattr(client, method)(path, **kwargs)

    assert response.status_code == 422
    assert client.get("/queue").json()["length"] == 0


def test_offline_changes_wait_for_connectivity(client):
    assert client.post("/connectivity", json={"online": False}).json()["online"] is False

    client.post("/dates/2024-03-01/toggles/0")
    client.post("/dates/2024-03-01/toggles/0")
    queue = client.post("/queue/flush").json()
    assert queue["length"] == 2
    assert queue["head_attempts"] == 0

    queue = client.post("/connectivity", json={"online": True}).json()
    assert queue["online"] is True
    assert queue["length"] == 0
