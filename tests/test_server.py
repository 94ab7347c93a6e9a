"""Tests for the server composition root."""

import asyncio
from dataclasses import replace

from index_mcp import server
from index_mcp.data.providers import StaticMarketDataProvider


class TestServices:
    """Tests for Services wiring and lifecycle."""

    def test_wiring(self, settings, tmp_path):
        """Settings select the providers; the session shares the cache."""
        services = server.Services(replace(settings, cache_dir=str(tmp_path / "history")))
        assert isinstance(services.session._provider, StaticMarketDataProvider)
        assert services.session._history_cache is services.history_cache
        asyncio.run(services.close())

    def test_start_and_close(self, settings, tmp_path):
        """Start arms the scheduler; close stops it and shuts the executor down."""
        services = server.Services(replace(settings, cache_dir=str(tmp_path / "history")))

        async def scenario():
            services.start()
            running = services.scheduler.is_running
            await services.close()
            return running

        assert asyncio.run(scenario()) is True
        assert services.scheduler.is_running is False
        assert services.executor.is_shut_down is True

    def test_scheduled_refresh_runs_cycle(self, settings, tmp_path):
        """The scheduler callback performs a full refresh."""
        services = server.Services(replace(settings, cache_dir=str(tmp_path / "history")))
        asyncio.run(services._scheduled_refresh())
        assert services.session.analysis is not None
        assert services.session.history_uri is not None
        asyncio.run(services.close())

    def test_get_services_reads_environment(self, monkeypatch, tmp_path):
        """Services are built once from the environment."""
        monkeypatch.setenv("MARKET_PROVIDER", "static")
        monkeypatch.setenv("NARRATIVE_PROVIDER", "template")
        monkeypatch.setenv("CACHE_DIR", str(tmp_path / "history"))
        monkeypatch.setattr(server, "_services", None)

        services = server.get_services()
        assert server.get_services() is services
        assert services.settings.market_provider == "static"
        asyncio.run(services.close())
