import pytest

from npu_model.arith import INT32_MAX, INT32_MIN
from npu_model.mac_unit_model import MAC_LATENCY, MACUnit


def test_latency_is_two_cycles():
    assert MAC_LATENCY == 2
    mac = MACUnit()
    # Value returned is the accumulator observed at the start of the next cycle
    assert mac.clock_cycle(3, 4, enable=True) == 0
    assert mac.clock_cycle() == 12


def test_back_to_back_enables_lose_nothing():
    mac = MACUnit()
    seen = [mac.clock_cycle(1, 2, enable=True),
            mac.clock_cycle(3, 4, enable=True),
            mac.clock_cycle(5, 6, enable=True),
            mac.clock_cycle()]
    assert seen == [0, 2, 14, 44]


def test_clear_has_priority_over_enable():
    mac = MACUnit()
    mac.clock_cycle(3, 4, enable=True)
    assert mac.clock_cycle() == 12
    assert mac.clock_cycle(5, 5, enable=True, clear_acc=True) == 0
    assert mac.clock_cycle() == 0


def test_clear_drops_operation_in_flight():
    mac = MACUnit()
    mac.clock_cycle(3, 4, enable=True)
    assert mac.clock_cycle(clear_acc=True) == 0
    assert mac.clock_cycle() == 0
    assert mac.get_state() == {'mult_stage': 0, 'mult_valid': 0, 'acc': 0}


def test_accumulator_wraps_without_saturation():
    mac = MACUnit()
    mac.acc.reset(INT32_MAX)
    mac.clock_cycle(1, 1, enable=True)
    assert mac.clock_cycle() == INT32_MIN


@pytest.mark.parametrize("a,b,expected", [
    (127, 127, 16129),
    (-128, -128, 16384),
    (127, -128, -16256),
    (0, 50, 0),
])
def test_product_extremes(a, b, expected):
    mac = MACUnit()
    mac.clock_cycle(a, b, enable=True)
    assert mac.clock_cycle() == expected


def test_functional_mac_matches_large_accumulation():
    mac = MACUnit()
    for _ in range(256):
        mac.mac(127, 127)
    assert mac.acc.get() == 4129024
    mac.clear()
    assert mac.acc.get() == 0
