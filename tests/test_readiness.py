"""Tests for readiness probes."""
import asyncio
import socket

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as HealthServer

from sqelf_ci.orchestrator.readiness import (
    HttpReadinessProbe,
    LogMarkerProbe,
    ReadinessProbe,
    all_ready,
    check_all,
    describe,
)

from conftest import RaisingProbe, StaticProbe, clef_line


def unused_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestReadinessProbe:
    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            ReadinessProbe()


class TestLogMarkerProbe:
    def test_not_written_yet(self, tmp_path):
        result = asyncio.run(LogMarkerProbe(tmp_path / "sqelf.log", r"Setting up for UDP").check())
        assert not result.ready

    def test_marker_found(self, tmp_path):
        path = tmp_path / "sqelf.log"
        path.write_text(clef_line("Setting up for UDP") + "\n", encoding="utf-8")

        result = asyncio.run(LogMarkerProbe(path, r"Setting up for (UDP|TCP)").check())

        assert result.ready

    def test_marker_missing(self, tmp_path):
        path = tmp_path / "sqelf.log"
        path.write_text(clef_line("Starting GELF server") + "\n", encoding="utf-8")

        assert not asyncio.run(LogMarkerProbe(path, r"Setting up for UDP").check()).ready


class TestHttpReadinessProbe:
    def run_against(self, status):
        async def health(_request):
            return web.Response(status=status)

        async def scenario():
            app = web.Application()
            app.router.add_get("/health", health)
            async with HealthServer(app) as server:
                return await HttpReadinessProbe(str(server.make_url("/health"))).check()

        return asyncio.run(scenario())

    def test_healthy(self):
        assert self.run_against(200).ready

    def test_unhealthy(self):
        result = self.run_against(503)
        assert not result.ready
        assert "503" in result.message

    def test_unreachable(self):
        probe = HttpReadinessProbe(f"http://127.0.0.1:{unused_port()}/health", request_timeout_seconds=1)
        assert not asyncio.run(probe.check()).ready


class TestCheckAll:
    def test_raising_probe_is_not_ready(self):
        results = asyncio.run(check_all([StaticProbe(0), RaisingProbe()]))

        assert not all_ready(results)
        assert "raising: not ready (connection refused)" in describe(results)

    def test_describe_without_results(self):
        assert describe(None) == "no probe results"
