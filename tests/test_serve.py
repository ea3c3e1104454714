import pytest

from app import serve


@pytest.fixture
def runs(monkeypatch):
    calls = []
    monkeypatch.setattr(serve.uvicorn, "run", lambda target, **kw: calls.append((target, kw)))
    return calls


def test_defaults_to_api_on_port_env(runs, monkeypatch):
    monkeypatch.setenv("PORT", "9090")

    assert serve.main([]) == 0

    assert runs == [("app.api_service:app", {"host": "0.0.0.0", "port": 9090, "log_config": None})]


def test_ingest_service_with_explicit_port(runs):
    serve.main(["ingest", "--port", "7000"])

    assert runs[0][0] == "app.ingest_service:app"
    assert runs[0][1]["port"] == 7000


def test_unknown_service_exits(runs):
    with pytest.raises(SystemExit):
        serve.main(["billing"])
    assert runs == []
