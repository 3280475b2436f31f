"""Tests for PKCE verifier, challenge and state generation."""

import base64
import hashlib

import pytest

from social_connect.auth.pkce import (
    UNRESERVED_CHARACTERS,
    derive_challenge,
    generate_pkce_pair,
    generate_state,
    generate_verifier,
)


@pytest.mark.parametrize("length", [43, 64, 128])
def test_verifier_length_and_alphabet(length):
    """Verifiers have the requested length and only unreserved characters."""
    for _ in range(50):
        verifier = generate_verifier(length)
        assert len(verifier) == length
        assert set(verifier) <= set(UNRESERVED_CHARACTERS)


def test_default_verifier_is_within_rfc_range():
    verifier = generate_verifier()
    assert 43 <= len(verifier) <= 128


@pytest.mark.parametrize("length", [0, 42, 129])
def test_verifier_length_out_of_range(length):
    with pytest.raises(ValueError, match="between 43 and 128"):
        generate_verifier(length)


def test_challenge_matches_rfc7636_appendix_b():
    """Known-answer test from RFC 7636 Appendix B."""
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert derive_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_challenge_is_unpadded_base64url_sha256():
    verifier = generate_verifier()
    challenge = derive_challenge(verifier)
    expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
    assert challenge == expected.decode().rstrip("=")
    assert "=" not in challenge
    assert len(challenge) == 43


def test_challenge_is_deterministic():
    verifier = generate_verifier()
    assert derive_challenge(verifier) == derive_challenge(verifier)


def test_distinct_verifiers_give_distinct_challenges():
    verifiers = {generate_verifier() for _ in range(500)}
    challenges = {derive_challenge(v) for v in verifiers}
    assert len(challenges) == len(verifiers)


def test_pkce_pair_is_consistent():
    pair = generate_pkce_pair()
    assert pair.code_challenge == derive_challenge(pair.code_verifier)


def test_state_is_random_and_independent_of_verifier():
    pair = generate_pkce_pair()
    state = generate_state()
    assert state != pair.code_verifier
    assert len(state) >= 43
    assert len({generate_state() for _ in range(200)}) == 200
