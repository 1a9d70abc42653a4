from unittest.mock import Mock, patch

from dependency_injector import providers

from run import main
from newscrawl.container import Container


def test_container_creates_services():
    container = Container()
    container.config.USER_AGENT.from_value("TestBot/1.0")
    container.config.SCRAPER_RATE_LIMIT.from_value(5.0)
    container.db_engine.override(providers.Object(Mock()))

    http_service = container.http_service()
    fetcher = container.fetcher()
    coordinator = container.run_coordinator()

    assert http_service.user_agent == "TestBot/1.0"
    assert fetcher.rate_limiter.rate == 5.0
    assert fetcher.max_retries == 3
    assert coordinator.flush_every == 50
    assert container.run_coordinator() is coordinator


def test_main_accepts_injected_container():
    container = Container()
    container.db_engine.override(providers.Object(Mock()))
    container.config.SERVER_PORT.from_value(9123)

    with patch('run.uvicorn.run') as mock_uvicorn:
        main(container=container)

        assert mock_uvicorn.called
        assert mock_uvicorn.call_args.kwargs["port"] == 9123
