"""
Unit Tests for QuizBotService
=============================
Join / bulk join / session commands / probes through the service facade,
with the remote hub replaced by in-memory fakes.
"""

import pytest

from conftest import invocation, wait_until
from quizswarm.application.services.quiz_bot_service import QuizBotService
from quizswarm.core.exceptions import (
    InvalidPinError,
    NegotiationError,
    NegotiationFailure,
    SessionNotFoundError,
)
from quizswarm.domain.models.hub_session import SessionRole, SessionState

PIN = "123456"


@pytest.fixture
def service(app_settings, logger, fake_hub, connector):
    fake_hub.pin_bodies[PIN] = {"playId": "game-1"}
    return QuizBotService(app_settings, logger, connector=connector, http_session=fake_hub.session)


async def started(service):
    await service.start()
    return service


class TestJoin:

    @pytest.mark.asyncio
    async def test_join_registers_open_session(self, service, connector):
        await started(service)

        session = await service.join_session(PIN, "  alice ", owner="10.0.0.1")
        await wait_until(lambda: session.state == SessionState.JOINED)

        assert session.game_id == "game-1"
        assert session.pin == PIN
        assert session.display_name == "alice"
        assert service.get_session(session.session_id)["state"] == "joined"
        assert connector.sockets[0].invocations("PlayerJoined")[0]["arguments"] == ["game-1", "alice"]
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_negotiation_without_socket_url_registers_nothing(self, service, fake_hub, connector):
        await started(service)
        fake_hub.negotiate_body = {"accessToken": "abc"}

        with pytest.raises(NegotiationError) as exc_info:
            await service.join_session(PIN, "alice")

        assert exc_info.value.reason == NegotiationFailure.NO_TOKEN
        assert service.list_sessions() == []
        assert connector.urls == []
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_pin(self, service, fake_hub):
        await started(service)

        with pytest.raises(InvalidPinError) as exc_info:
            await service.join_session("999999", "alice")

        assert exc_info.value.error_code == 1
        assert fake_hub.calls_to("negotiate") == []
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_empty_display_name(self, service, fake_hub):
        with pytest.raises(ValueError):
            await service.join_session(PIN, "   ")
        assert fake_hub.session.calls == []

    @pytest.mark.asyncio
    async def test_bulk_join_collects_per_bot_errors(self, service, fake_hub, connector):
        await started(service)
        connector.fail_calls.add(1)

        result = await service.bulk_join(PIN, ["bot-1", "bot-2", "", "bot-3"], owner="10.0.0.1")

        assert result["total"] == 3
        assert [b["display_name"] for b in result["joined"]] == ["bot-1", "bot-3"]
        assert [e["display_name"] for e in result["errors"]] == ["bot-2"]
        assert len(fake_hub.calls_to("/player/pin")) == 1
        bots = service.list_sessions(owner="10.0.0.1")
        assert {b["role"] for b in bots} == {SessionRole.BOT.value}
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_bulk_join_without_names(self, service):
        with pytest.raises(ValueError):
            await service.bulk_join(PIN, ["", "  "])


class TestSessionCommands:

    @pytest.mark.asyncio
    async def test_unknown_session(self, service):
        with pytest.raises(SessionNotFoundError):
            service.get_session("nope")
        with pytest.raises(SessionNotFoundError):
            await service.submit_answer("nope", 0)

    @pytest.mark.asyncio
    async def test_manual_answer_flow(self, service, connector):
        await started(service)
        session = await service.join_session(PIN, "alice", auto_answer=False)
        await wait_until(lambda: session.state == SessionState.JOINED)

        connector.sockets[0].feed(invocation("ShowQuestion", {"rightAnswer": "01", "maxAnswers": 2}))
        await wait_until(lambda: session.current_question is not None)
        outcome = await service.submit_answer(session.session_id, 1)

        assert outcome.sent and outcome.was_correct
        assert service.set_auto_answer(session.session_id, True)["auto_answer"] is True
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_disconnect_and_bulk_disconnect(self, service):
        await started(service)
        first = await service.join_session(PIN, "alice")
        second = await service.join_session(PIN, "bob")

        snapshot = await service.disconnect(first.session_id)
        result = await service.bulk_disconnect([second.session_id, "missing"])

        assert snapshot["state"] == "closed"
        assert result["disconnected"] == [second.session_id]
        assert result["errors"][0]["id"] == "missing"
        assert second.state == SessionState.CLOSED
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_list_sessions_by_game_and_owner(self, service, fake_hub):
        await started(service)
        fake_hub.pin_bodies["222222"] = {"playId": "game-2"}
        await service.join_session(PIN, "alice", owner="a")
        await service.join_session("222222", "bob", owner="b")

        assert [s["display_name"] for s in service.list_sessions(game_id="game-2")] == ["bob"]
        assert [s["display_name"] for s in service.list_sessions(owner="a")] == ["alice"]
        await service.shutdown()


class TestProbesAndHealth:

    @pytest.mark.asyncio
    async def test_probe_finds_open_game_end_to_end(self, service, fake_hub, connector):
        await started(service)
        fake_hub.pin_bodies["000004"] = {"playId": "open-game"}

        job_id = service.start_probe(0, "10.0.0.1")
        snapshot = await service.prober.wait(job_id, timeout=2.0)

        assert snapshot["status"] == "found"
        assert snapshot["found"]["pin"] == "000004"
        assert connector.sockets[0].closed
        assert service.list_sessions() == []
        assert [job["job_id"] for job in service.list_probe_jobs("10.0.0.1")] == [job_id]
        assert service.get_probe_status(job_id)["status"] == "found"
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_validate_pin(self, service):
        await started(service)

        result = await service.validate_pin(PIN)

        assert result.accepted and result.play_id == "game-1"
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_health_and_shutdown(self, service):
        assert service.health()["status"] == "stopped"
        await started(service)
        session = await service.join_session(PIN, "alice")
        await wait_until(lambda: session.state == SessionState.JOINED)

        health = service.health()
        assert health["status"] == "ok"
        assert health["sessions"] == 1
        assert health["connected_sessions"] == 1

        await service.shutdown()
        assert session.state == SessionState.CLOSED
        assert service.health()["sessions"] == 0

    @pytest.mark.asyncio
    async def test_random_pin_search(self, service, fake_hub, connector):
        await started(service)
        fake_hub.pin_bodies["000004"] = {"playId": "open-game"}

        result = await service.find_random_pin(max_attempts=2, start=4, end=4)

        assert result["success"] is True
        assert result["found"] == {"pin": "000004", "play_id": "open-game", "attempt": 1}
        assert connector.sockets[0].closed
        assert service.list_sessions() == []
        await service.shutdown()
