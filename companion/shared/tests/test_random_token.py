from collections import Counter

import pytest

from companion.shared.utils.random_token import (
    DEFAULT_ALPHABET,
    generate_random_string,
)


def test_default_alphabet_excludes_ambiguous_characters():
    assert len(DEFAULT_ALPHABET) == 34
    assert len(set(DEFAULT_ALPHABET)) == len(DEFAULT_ALPHABET)
    for excluded in "IO":
        assert excluded not in DEFAULT_ALPHABET
    assert not any(char.islower() for char in DEFAULT_ALPHABET)


def test_length_and_alphabet_are_respected():
    token = generate_random_string(10)

    assert len(token) == 10
    assert set(token) <= set(DEFAULT_ALPHABET)
    assert set(generate_random_string(50, "AB")) <= {"A", "B"}
    assert generate_random_string(0) == ""


def test_empty_alphabet_falls_back_to_default():
    assert set(generate_random_string(40, "")) <= set(DEFAULT_ALPHABET)


def test_negative_length_is_rejected():
    with pytest.raises(ValueError):
        generate_random_string(-1)


def test_characters_are_uniformly_distributed():
    per_character = 2000
    sample = generate_random_string(per_character * len(DEFAULT_ALPHABET))
    counts = Counter(sample)

    assert set(counts) == set(DEFAULT_ALPHABET)
    # 20% is roughly nine standard deviations at this sample size
    for char in DEFAULT_ALPHABET:
        assert abs(counts[char] - per_character) < per_character * 0.2
