"""Tests for the event hub."""

from team_sync.events import EventHub, EventKind


class TestEventHub:
    """Tests for EventHub."""

    def test_handlers_receive_payload_in_order(self) -> None:
        """Handlers run in subscription order for each emission."""
        hub = EventHub()
        received = []
        hub.subscribe(EventKind.FILE_CHANGED, lambda p: received.append(("first", p)))
        hub.subscribe(EventKind.FILE_CHANGED, lambda p: received.append(("second", p)))

        hub.emit(EventKind.FILE_CHANGED, "a.md")
        hub.emit(EventKind.FILE_CHANGED, "b.md")

        assert received == [
            ("first", "a.md"),
            ("second", "a.md"),
            ("first", "b.md"),
            ("second", "b.md"),
        ]

    def test_kinds_are_independent(self) -> None:
        """Handlers only see their own kind."""
        hub = EventHub()
        received = []
        hub.subscribe(EventKind.FILE_READ, received.append)

        hub.emit(EventKind.FILE_CHANGED, "a.md")

        assert received == []

    def test_unsubscribe(self) -> None:
        """An unsubscribed handler no longer runs; unsubscribing twice is safe."""
        hub = EventHub()
        received = []
        unsubscribe = hub.subscribe(EventKind.FILE_READ, received.append)

        unsubscribe()
        unsubscribe()
        hub.emit(EventKind.FILE_READ, "a.md")

        assert received == []
        assert hub.handler_count(EventKind.FILE_READ) == 0

    def test_failing_handler_does_not_stop_others(self, capsys) -> None:
        """A raising handler is logged and the next handler still runs."""
        hub = EventHub()
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        hub.subscribe(EventKind.ACTIVITY_UPDATED, broken)
        hub.subscribe(EventKind.ACTIVITY_UPDATED, received.append)

        hub.emit(EventKind.ACTIVITY_UPDATED, [1])

        assert received == [[1]]
        assert "boom" in capsys.readouterr().err
