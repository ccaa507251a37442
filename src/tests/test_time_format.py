import pytest

from camper.utils.time_format import format_duration


@pytest.mark.parametrize("seconds, expected", [
    (0, "0:00"),
    (5.9, "0:05"),
    (200.5, "3:20"),
    (3599, "59:59"),
    (3600, "1:00:00"),
    (3725, "1:02:05"),
    (None, "--:--"),
    (-1, "--:--"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
