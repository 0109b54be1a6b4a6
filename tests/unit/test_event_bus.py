"""Unit tests for core event bus module."""
import pytest

from stockfunnel.core.event_bus import AI_PROGRESS, SCREENER_PROGRESS, EventBus


@pytest.fixture
def bus():
    """Fixture providing a fresh EventBus instance."""
    return EventBus()


class TestEventBusBasics:
    async def test_subscribe_and_emit(self, bus):
        received = []

        async def handler(data):
            received.append(data)

        bus.subscribe(SCREENER_PROGRESS, handler)
        await bus.emit(SCREENER_PROGRESS, {"processed": 10})
        assert received == [{"processed": 10}]

    async def test_emit_without_data(self, bus):
        received = []

        async def handler(data):
            received.append(data)

        bus.subscribe(AI_PROGRESS, handler)
        await bus.emit(AI_PROGRESS)
        assert received == [None]

    async def test_emit_without_subscribers(self, bus):
        await bus.emit("nobody.listens", {"x": 1})

    async def test_unsubscribe(self, bus):
        received = []

        async def handler(data):
            received.append(data)

        bus.subscribe(SCREENER_PROGRESS, handler)
        bus.unsubscribe(SCREENER_PROGRESS, handler)
        await bus.emit(SCREENER_PROGRESS, 1)
        assert received == []

    def test_non_callable_handler_rejected(self, bus):
        with pytest.raises(TypeError):
            bus.subscribe(SCREENER_PROGRESS, "not a handler")


class TestEventBusIsolation:
    async def test_failing_handler_does_not_reach_emitter(self, bus):
        received = []

        async def broken(data):
            raise RuntimeError("boom")

        async def healthy(data):
            received.append(data)

        bus.subscribe(SCREENER_PROGRESS, broken)
        bus.subscribe(SCREENER_PROGRESS, healthy)
        await bus.emit(SCREENER_PROGRESS, "snapshot")
        assert received == ["snapshot"]
