"""
Unit tests -- per-key in-flight de-duplication.
"""
import threading
import time
import pytest
from querygate.copilot.single_flight import SingleFlight


def test_single_caller_is_leader():
    sf = SingleFlight()
    value, shared = sf.do("k", lambda: 42)
    assert value == 42
    assert shared is False
    assert sf.in_flight() == 0


def test_concurrent_callers_share_one_execution():
    sf = SingleFlight()
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow():
        calls.append(1)
        started.set()
        release.wait(timeout=5)
        return "answer"

    results = []

    def worker():
        results.append(sf.do("k", slow))

    leader = threading.Thread(target=worker)
    leader.start()
    assert started.wait(timeout=5)

    followers = [threading.Thread(target=worker) for _ in range(3)]
    for t in followers:
        t.start()
    deadline = time.monotonic() + 5
    while sf.waiting("k") < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert sf.waiting("k") == 3
    release.set()
    for t in [leader, *followers]:
        t.join(timeout=5)

    assert len(calls) == 1
    assert len(results) == 4
    assert all(value == "answer" for value, _ in results)
    assert sorted(shared for _, shared in results) == [False, True, True, True]


def test_different_keys_run_independently():
    sf = SingleFlight()
    assert sf.do("a", lambda: 1) == (1, False)
    assert sf.do("b", lambda: 2) == (2, False)


def test_error_propagates_and_key_is_released():
    sf = SingleFlight()

    def boom():
        raise RuntimeError("analysis failed")

    with pytest.raises(RuntimeError, match="analysis failed"):
        sf.do("k", boom)
    assert sf.in_flight() == 0
    assert sf.do("k", lambda: "retry") == ("retry", False)
