"""
Tests for talentsync.health.HealthProbe and the processor health server.
"""

import json

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from talentsync.health import HealthProbe
from talentsync.health_server import HealthServer


class FakeCircuits:
    def __init__(self, states):
        self.states = states

    def circuit_states(self):
        return self.states


async def reachable():
    return True


async def unreachable():
    return False


def broken_store():
    engine = create_engine("sqlite:////nonexistent-dir/talentsync.db")
    return sessionmaker(bind=engine)


class TestHealthProbe:
    async def test_healthy(self, session_factory, tenant):
        status = await HealthProbe(session_factory, ai_check=reachable, version="1.0.0").check()

        assert status["status"] == "healthy"
        assert status["version"] == "1.0.0"
        assert status["components"]["database"]["status"] == "connected"
        assert status["components"]["database"]["queue"]["pending"] == 0
        assert status["components"]["ai"]["status"] == "reachable"

    async def test_ai_not_configured_is_still_healthy(self, session_factory, tenant):
        status = await HealthProbe(session_factory).check()
        assert status["status"] == "healthy"
        assert status["components"]["ai"]["status"] == "not_configured"

    async def test_unreachable_ai_degrades(self, session_factory, tenant):
        status = await HealthProbe(session_factory, ai_check=unreachable).check()
        assert status["status"] == "degraded"

    async def test_broken_connection_degrades(self, db, session_factory, tenant):
        tenant.connection.status = "broken"
        db.commit()

        status = await HealthProbe(session_factory).check()

        assert status["status"] == "degraded"
        assert status["components"]["ats"]["broken_connections"] == [tenant.id]

    async def test_open_circuit_degrades(self, session_factory, tenant):
        probe = HealthProbe(session_factory, ats_client=FakeCircuits({tenant.id: "open"}))
        status = await probe.check()
        assert status["components"]["ats"]["open_circuits"] == [tenant.id]
        assert status["status"] == "degraded"

    async def test_database_down_is_unhealthy(self):
        status = await HealthProbe(broken_store()).check()
        assert status["status"] == "unhealthy"
        assert status["components"]["database"]["status"] == "disconnected"


class TestHealthServer:
    async def test_health_handler_reports_probe(self, session_factory, tenant):
        server = HealthServer(HealthProbe(session_factory), status_callback=lambda: {"worker": "running"})

        response = await server.health_handler(None)

        body = json.loads(response.text)
        assert response.status == 200
        assert body["details"] == {"worker": "running"}

    async def test_unhealthy_answers_503(self):
        response = await HealthServer(HealthProbe(broken_store())).health_handler(None)
        assert response.status == 503

    async def test_live_handler(self, session_factory):
        response = await HealthServer(HealthProbe(session_factory)).live_handler(None)
        assert json.loads(response.text) == {"status": "alive"}
