"""Key sanitizer tests — filesystem safety and uniqueness.

Tests cover:
    - URLs, query strings and identifiers map to distinct tokens
    - Tokens never contain separators or dots
    - Over-long keys are shortened deterministically and stay distinct
    - Empty keys are rejected
"""

import itertools

import pytest

from tiercache.cache import sanitize
from tiercache.cache._keys import MAX_TOKEN_LENGTH


CORPUS = [
    "movie_42",
    "movie_42_credits",
    "movie/42",
    "movie:42",
    "movie?42",
    "movie&42",
    "movie_42.meta",
    "movie%2F42",
    "cage_filmography",
    "https://image.tmdb.org/t/p/w500/abc.jpg",
    "https://image.tmdb.org/t/p/w500/abc_jpg",
    "https://image.tmdb.org/t/p/w500/abc.jpg?size=1",
    "https://image.tmdb.org/t/p/w500/abc.jpg?size=1&lang=en",
    "https://image.tmdb.org/t/p/w500/abc.jpg?size=1_lang=en",
    "https://api.themoviedb.org/3/search/movie?query=face/off",
    "https://api.themoviedb.org/3/search/movie?query=face_off",
    "/t/p/w500/poster_7.jpg",
    "_t_p_w500_poster_7_jpg",
    "ñandú",
    "é",
    ".",
    "..",
]


def test_corpus_has_no_collisions():
    tokens = [sanitize(k) for k in CORPUS]
    assert len(set(tokens)) == len(CORPUS)


@pytest.mark.parametrize("key", CORPUS)
def test_token_is_filesystem_safe(key):
    token = sanitize(key)
    assert "/" not in token
    assert "\\" not in token
    assert "." not in token
    assert token not in ("", ".", "..")


def test_plain_identifiers_stay_readable():
    assert sanitize("movie_42") == "movie_42"
    assert sanitize("poster-7") == "poster-7"


def test_sanitize_is_deterministic():
    key = "https://image.tmdb.org/t/p/original/xyz.png?x=1"
    assert sanitize(key) == sanitize(key)


def test_long_keys_are_shortened_and_distinct():
    base = "https://api.themoviedb.org/3/discover/movie?" + "&".join(f"p{i}={i}" for i in range(60))
    a, b = sanitize(base + "&z=1"), sanitize(base + "&z=2")
    assert len(a) == MAX_TOKEN_LENGTH + 1
    assert a != b
    assert "." not in a


def test_long_and_short_keys_never_collide():
    keys = ["x" * n for n in (MAX_TOKEN_LENGTH - 1, MAX_TOKEN_LENGTH, MAX_TOKEN_LENGTH + 1, 500)]
    tokens = [sanitize(k) for k in keys]
    for t1, t2 in itertools.combinations(tokens, 2):
        assert t1 != t2


def test_empty_key_rejected():
    with pytest.raises(ValueError):
        sanitize("")
