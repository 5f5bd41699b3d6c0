import pytest
from fastapi.testclient import TestClient

from backend.navrisk import main
from backend.navrisk.schemas import PortfolioMetrics


def test_runner_lives_only_inside_the_app_lifespan():
    with TestClient(main.app) as client:
        runner = main.runner
        assert runner is not None
        assert client.get("/api/v1/health").status_code == 200

    # executor is shut down on exit
    with pytest.raises(RuntimeError):
        runner.submit("view", PortfolioMetrics(annual_return=0.05, annual_vol=0.1), 1_000, 1, 10)


def test_each_lifespan_gets_a_fresh_runner():
    with TestClient(main.app):
        first = main.runner
    with TestClient(main.app):
        second = main.runner
    assert first is not second
