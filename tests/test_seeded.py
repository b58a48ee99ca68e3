import pytest

from amber_engine.seeded import SeededRandom, hash_string, seeded_random


def test_seeded_random_is_repeatable():
    for seed in ["S1-01", "S1-02", "subject-xyz", "", "ÆØÅ", "😀"]:
        assert seeded_random(seed) == seeded_random(seed)


def test_seeded_random_stays_in_unit_interval():
    for i in range(2000):
        r = seeded_random(f"seed-{i}-{'x' * (i % 17)}")
        assert 0.0 <= r < 1.0


def test_seeded_random_known_values_are_frozen():
    # These values are part of the save format; changing the hash breaks saves.
    assert seeded_random("") == 0.0
    assert seeded_random("a") == 97 / 2147483647
    assert seeded_random("ab") == (97 * 31 + 98) / 2147483647
    # Astral characters hash as two UTF-16 code units.
    assert seeded_random("😀") == (0xD83D * 31 + 0xDE00) / 2147483647


def test_seeded_random_coerces_non_strings():
    assert seeded_random(42) == seeded_random("42")


def test_hash_string_empty_is_djb2_seed():
    assert hash_string("") == 5381
    assert 0 <= hash_string("S1-02") <= 0xFFFFFFFF


def test_seeded_stream_is_deterministic_per_seed():
    a = SeededRandom("S1-02:bpm")
    b = SeededRandom("S1-02:bpm")
    c = SeededRandom("S1-03:bpm")
    seq_a = [a.next() for _ in range(20)]
    seq_b = [b.next() for _ in range(20)]
    seq_c = [c.next() for _ in range(20)]
    assert seq_a == seq_b
    assert seq_a != seq_c
    assert all(0.0 <= x < 1.0 for x in seq_a)


def test_seeded_stream_helpers():
    rng = SeededRandom(0)  # zero state is bumped to a usable seed
    for _ in range(200):
        assert 3 <= rng.int(3, 7) <= 7
        assert 1.5 <= rng.range(1.5, 2.5) < 2.5
        assert rng.pick(["a", "b", "c"]) in {"a", "b", "c"}
    assert rng.bool(0.0) is False
    assert rng.bool(1.0) is True


def test_seeded_stream_pick_rejects_empty():
    with pytest.raises(ValueError):
        SeededRandom("x").pick([])
