from medroute.models import ConflictSeverity, TimeWindowConfig
from medroute.services.conflicts import (
    check_time_conflicts,
    check_time_overlap,
    detect_conflicts,
    get_buffer,
    get_time_bounds,
)


def return_trip(make_trip, id: int, earliest: str):
    return make_trip(
        id,
        pickup="Toulon",
        destination="Hyères",
        appointment_time=earliest,
        is_return_trip=True,
        original_trip_id=1,
        earliest_pickup_time=earliest,
    )


class TestPointConflicts:
    def test_no_conflicts_without_existing_trips(self, make_trip) -> None:
        assert detect_conflicts(make_trip(1), []) == []

    def test_severity_depends_on_gap(self, make_trip) -> None:
        trip = make_trip(1, appointment_time="09:00")
        existing = [
            make_trip(2, appointment_time="09:10"),
            make_trip(3, appointment_time="08:40"),
            make_trip(4, appointment_time="09:30"),
        ]

        conflicts = detect_conflicts(trip, existing)

        assert [c.conflicting_trip.id for c in conflicts] == [2, 3]
        assert conflicts[0].severity == ConflictSeverity.HIGH
        assert conflicts[0].time_difference_minutes == 10
        assert conflicts[1].severity == ConflictSeverity.MEDIUM
        assert conflicts[1].time_difference_minutes == 20


class TestTimeBounds:
    def test_appointment_without_duration(self, make_trip) -> None:
        assert get_time_bounds(make_trip(1, appointment_time="09:00")) == (510, 630)

    def test_appointment_with_duration(self, make_trip) -> None:
        assert get_time_bounds(make_trip(1, appointment_time="09:00", duration=90)) == (510, 660)

    def test_return_trip_uses_earliest_pickup(self, make_trip) -> None:
        assert get_time_bounds(return_trip(make_trip, 2, "10:00")) == (600, 660)

    def test_bounds_are_clamped_to_working_hours(self, make_trip) -> None:
        assert get_time_bounds(make_trip(1, appointment_time="06:00")) == (360, 450)
        assert get_time_bounds(make_trip(1, appointment_time="21:30")) == (1260, 1320)

    def test_custom_buffers(self, make_trip) -> None:
        config = TimeWindowConfig(appointment_buffer_before=10, appointment_buffer_after=0)
        assert get_time_bounds(make_trip(1, appointment_time="09:00"), config) == (530, 600)


class TestIntervalConflicts:
    def test_buffers(self, make_trip) -> None:
        appointment = make_trip(1)
        ret = return_trip(make_trip, 2, "10:00")

        assert get_buffer(appointment, make_trip(3)) == 20
        assert get_buffer(ret, return_trip(make_trip, 4, "12:00")) == 10
        assert get_buffer(appointment, ret) == 15
        assert get_buffer(ret, appointment) == 15

    def test_overlap_respects_buffer(self, make_trip) -> None:
        first = make_trip(1, appointment_time="09:00")

        assert check_time_overlap(first, make_trip(2, appointment_time="11:00"))
        assert not check_time_overlap(first, make_trip(2, appointment_time="11:20"))

    def test_overlap_is_symmetric(self, make_trip) -> None:
        trips = [
            make_trip(1, appointment_time="09:00"),
            make_trip(2, appointment_time="10:45", duration=30),
            return_trip(make_trip, 3, "10:00"),
            return_trip(make_trip, 4, "11:00"),
        ]
        for a in trips:
            for b in trips:
                assert check_time_overlap(a, b) == check_time_overlap(b, a)

    def test_mixed_appointment_and_return(self, make_trip) -> None:
        appointment = make_trip(1, appointment_time="09:00")

        assert check_time_overlap(appointment, return_trip(make_trip, 2, "10:00"))
        assert not check_time_overlap(appointment, return_trip(make_trip, 3, "11:00"))

    def test_check_time_conflicts_reports_each_conflict(self, make_trip) -> None:
        trip = make_trip(1, appointment_time="09:00")
        existing = [
            make_trip(2, appointment_time="09:30"),
            make_trip(3, appointment_time="14:00"),
        ]

        result = check_time_conflicts(trip, existing)

        assert result["has_conflict"] is True
        assert result["conflicts"] == [{"trip_id": 2, "overlap_minutes": 90, "buffer": 20}]

    def test_check_time_conflicts_empty(self, make_trip) -> None:
        result = check_time_conflicts(make_trip(1), [])
        assert result == {"has_conflict": False, "conflicts": []}
