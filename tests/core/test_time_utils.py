import pytest

from medroute.core.time_utils import (
    is_valid_time,
    minutes_to_time,
    normalize_time,
    time_to_minutes,
    wrap_minutes,
)


class TestTimeUtils:
    def test_time_to_minutes(self) -> None:
        assert time_to_minutes("09:30") == 570
        assert time_to_minutes("00:00") == 0
        assert time_to_minutes(None) == 540
        assert time_to_minutes("", default=0) == 0

    def test_minutes_to_time_is_clamped(self) -> None:
        assert minutes_to_time(570) == "09:30"
        assert minutes_to_time(-15) == "00:00"
        assert minutes_to_time(1500) == "23:59"

    def test_wrap_minutes(self) -> None:
        assert wrap_minutes(1500) == "01:00"
        assert wrap_minutes(564) == "09:24"

    @pytest.mark.parametrize("value, expected", [("9:05", "09:05"), (" 14:30 ", "14:30"), ("23:59", "23:59")])
    def test_normalize_time(self, value, expected) -> None:
        assert normalize_time(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "", "1230"])
    def test_invalid_times(self, value) -> None:
        assert not is_valid_time(value)
        with pytest.raises(ValueError):
            normalize_time(value)
