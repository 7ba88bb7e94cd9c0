import pytest

from klinewatch.utils.backoff import ReconnectBackoff, jitter

def test_progression_caps():
    b = ReconnectBackoff(initial_s=0.25, cap_s=2.0)
    vals = [b.next() for _ in range(5)]
    assert vals == [0.25, 0.5, 1.0, 2.0, 2.0]
    assert b.attempts == 5

def test_reset_starts_over():
    b = ReconnectBackoff(initial_s=1.0, cap_s=8.0, factor=3.0)
    assert [b.next() for _ in range(3)] == [1.0, 3.0, 8.0]
    b.reset()
    assert b.attempts == 0
    assert b.next() == 1.0

@pytest.mark.parametrize("kw", [
    {"initial_s": 0.0},
    {"initial_s": 5.0, "cap_s": 1.0},
    {"factor": 0.5},
])
def test_bad_settings_rejected(kw):
    with pytest.raises(ValueError):
        ReconnectBackoff(**kw)

def test_jitter_bounds():
    for _ in range(100):
        v = jitter(10.0, ratio=0.2)
        assert 8.0 <= v <= 12.0
