import pytest

from common.config import MAX_SPEED, MIN_SPEED, Settings
from sync.corrector import (
    ADJUST,
    IN_SYNC,
    SEEK,
    CorrectionCurve,
    clamp_speed,
    compute_correction,
    format_offset,
)


@pytest.fixture
def settings():
    return Settings(role="slave", target="127.0.0.1:12345")


@pytest.fixture
def curve(settings):
    return CorrectionCurve.from_settings(settings)


def correct_diff(diff, settings, curve, base_speed=1.0, current=100.0):
    return compute_correction(current + diff, current, base_speed, settings, curve)


def test_curve_passes_through_tune_points(curve):
    assert curve(0.0) == 0.0
    assert curve(0.05) == pytest.approx(0.05)
    assert curve(0.2) == pytest.approx(0.125)
    assert curve(1.0) == pytest.approx(0.325)
    assert curve(0.1) == pytest.approx(0.075)
    assert curve(2.5) == pytest.approx(0.325 + 1.5 / 3.0)


def test_curve_is_continuous_and_monotonic(curve):
    prev = curve(0.0)
    x = 0.0
    while x < 5.0:
        x += 0.001
        y = curve(x)
        assert y >= prev
        assert y - prev < 0.002
        prev = y


@pytest.mark.parametrize("diff", [0.0, 0.01, -0.01, 0.0199, -0.0199])
def test_inside_hysteresis_band_returns_base_speed_exactly(diff, settings, curve):
    for base in (0.75, 1.0, 1.25):
        c = correct_diff(diff, settings, curve, base_speed=base)
        assert c.action == IN_SYNC
        assert c.speed == base


@pytest.mark.parametrize("diff", [5.01, -5.01, 7.0, -300.0])
def test_beyond_seek_threshold_seeks_without_speed(diff, settings, curve):
    c = correct_diff(diff, settings, curve)
    assert c.action == SEEK
    assert c.speed is None
    assert c.target == pytest.approx(100.0 + diff)


def test_progressive_band_is_monotonic_and_bounded(settings, curve):
    for base in (0.5, 1.0, 1.5, 2.0):
        prev_up, prev_down = base, base
        d = settings.speed_adjust_threshold + 0.001
        while d <= settings.seek_threshold:
            up = correct_diff(d, settings, curve, base_speed=base, current=0.0)
            down = correct_diff(-d, settings, curve, base_speed=base, current=0.0)
            assert up.action == ADJUST and down.action == ADJUST
            assert MIN_SPEED <= up.speed <= MAX_SPEED
            assert MIN_SPEED <= down.speed <= MAX_SPEED
            assert up.speed >= prev_up
            assert down.speed <= prev_down
            prev_up, prev_down = up.speed, down.speed
            d += 0.01


def test_correction_saturates_at_max_speed_adjust(settings, curve):
    c = correct_diff(4.9, settings, curve)
    assert c.speed == pytest.approx(1.0 + settings.max_speed_adjust)
    c = correct_diff(-4.9, settings, curve)
    assert c.speed == pytest.approx(1.0 - settings.max_speed_adjust)


def test_behind_speeds_up_and_ahead_slows_down(settings, curve):
    assert correct_diff(0.1, settings, curve).speed > 1.0
    assert correct_diff(-0.1, settings, curve).speed < 1.0


def test_scenario_follower_ahead_by_half_second(settings, curve):
    c = compute_correction(10.0, 10.5, 1.0, settings, curve)
    assert c.diff == pytest.approx(-0.5)
    assert c.action == ADJUST
    assert MIN_SPEED <= c.speed < 1.0
    assert c.speed == pytest.approx(1.0 - (0.125 + 0.3 * 0.25))
    assert c.direction == "AHEAD (slowing down)"


def test_scenario_follower_far_behind(settings, curve):
    c = compute_correction(10.015, 3.0, 1.0, settings, curve)
    assert c.action == SEEK
    assert c.target == 10.015
    assert c.direction == "HARD SEEK"


def test_same_inputs_same_correction(settings, curve):
    a = compute_correction(20.0, 19.7, 1.0, settings, curve)
    b = compute_correction(20.0, 19.7, 1.0, settings, curve)
    assert a == b


def test_clamp_speed():
    assert clamp_speed(0.1) == MIN_SPEED
    assert clamp_speed(3.0) == MAX_SPEED
    assert clamp_speed(1.3) == 1.3


def test_percent_relative_to_base(settings, curve):
    c = compute_correction(10.1, 10.0, 1.0, settings, curve)
    assert c.percent == pytest.approx((c.speed - 1.0) * 100.0)


def test_format_offset():
    assert format_offset(0.0) == ""
    assert format_offset(0.0005) == ""
    assert format_offset(0.015) == " | Offset: +15ms"
    assert format_offset(-0.02) == " | Offset: -20ms"
