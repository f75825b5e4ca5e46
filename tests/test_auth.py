"""
Tests for access token handling
"""

import pytest
from datetime import timedelta
from starlette.requests import Request
from taskflow.models.task import User
from taskflow.services.auth import ACCESS_TOKEN_COOKIE, AccessTokenVerifier, extract_token


def make_request(headers=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


def test_issue_and_verify_round_trip(alice):
    verifier = AccessTokenVerifier("secret")

    user = verifier.verify(verifier.issue(alice))

    assert user == alice


def test_expired_token_is_rejected(alice):
    verifier = AccessTokenVerifier("secret")
    token = verifier.issue(alice, expires_delta=timedelta(seconds=-5))

    assert verifier.verify(token) is None


def test_token_signed_with_other_secret_is_rejected(alice):
    token = AccessTokenVerifier("other").issue(alice)

    assert AccessTokenVerifier("secret").verify(token) is None


def test_garbage_and_missing_tokens():
    verifier = AccessTokenVerifier("secret")

    assert verifier.verify(None) is None
    assert verifier.verify("not-a-jwt") is None


def test_user_without_profile_fields():
    verifier = AccessTokenVerifier("secret")

    assert verifier.verify(verifier.issue(User(id="u1"))) == User(id="u1")


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        AccessTokenVerifier("")


def test_extract_token_prefers_bearer_header():
    request = make_request({
        "Authorization": "Bearer header-token",
        "Cookie": f"{ACCESS_TOKEN_COOKIE}=cookie-token",
    })
    assert extract_token(request) == "header-token"


def test_extract_token_falls_back_to_cookie():
    request = make_request({"Cookie": f"{ACCESS_TOKEN_COOKIE}=cookie-token"})
    assert extract_token(request) == "cookie-token"


def test_extract_token_ignores_other_schemes():
    assert extract_token(make_request({"Authorization": "Basic abc"})) is None
