import logging

from medroute.core.diagnostics import Diagnostics


class TestDiagnostics:
    def test_events_are_logged(self, caplog) -> None:
        diagnostics = Diagnostics()

        with caplog.at_level(logging.INFO, logger="medroute.core.diagnostics"):
            diagnostics.info("assignment_made", "Trip 1 assigned", trip_id=1)
            diagnostics.warning("trip_unassigned", "Trip 2 unassigned", trip_id=2)

        assert [r.levelname for r in caplog.records] == ["INFO", "WARNING"]
        assert "[assignment_made] Trip 1 assigned" in caplog.text
        assert diagnostics.events == []

    def test_record_and_callbacks(self) -> None:
        received = []
        diagnostics = Diagnostics(callbacks=[received.append], record=True)

        event = diagnostics.info("fallback_tier_chosen", "Using local fallback solver", tier="local")

        assert diagnostics.events == [event]
        assert received == [event]
        assert event.data == {"tier": "local"}
        assert event.level == "info"

    def test_subscribe(self) -> None:
        received = []
        diagnostics = Diagnostics()
        diagnostics.subscribe(lambda e: received.append(e.event))

        diagnostics.warning("provider_unavailable", "Solver tier failed")

        assert received == ["provider_unavailable"]
