from scavenger.domain.cycle_detector import CycleDetector


def test_first_key_becomes_baseline():
    detector = CycleDetector()

    assert detector.observe("k1") is False
    assert detector.baseline == "k1"


def test_fires_only_on_baseline_key():
    detector = CycleDetector()
    keys = ["k1", "k2", "k3", "k2", "k1"]

    results = [detector.observe(key) for key in keys]

    assert results == [False, False, False, False, True]


def test_value_equality_not_identity():
    detector = CycleDetector()
    detector.observe({"id": 7, "shard": "a"})

    assert detector.observe({"id": 7, "shard": "a"}) is True


def test_none_is_a_valid_baseline():
    detector = CycleDetector()

    assert detector.observe(None) is False
    assert detector.observe("x") is False
    assert detector.observe(None) is True


def test_identity_based_keys_never_match():
    detector = CycleDetector()
    detector.observe(object())

    assert detector.observe(object()) is False
