"""Tests for resolve_identity: request → user id."""

import dataclasses
from types import SimpleNamespace

import pytest

import identity
from identity import resolve_identity


def _request(state_user_id=None, headers=None):
    state = SimpleNamespace()
    if state_user_id is not None:
        state.user_id = state_user_id
    return SimpleNamespace(state=state, headers=headers or {})


@pytest.fixture
def trust_header(monkeypatch):
    monkeypatch.setattr(
        identity, "settings", dataclasses.replace(identity.settings, TRUST_USER_ID_HEADER=True)
    )


class TestDefault:
    def test_state_user_id(self):
        assert resolve_identity(_request(5)) == 5

    def test_header_ignored(self):
        assert resolve_identity(_request(headers={"X-User-ID": "9"})) is None

    def test_state_still_wins_when_header_sent(self):
        assert resolve_identity(_request(5, {"X-User-ID": "9"})) == 5

    def test_anonymous(self):
        assert resolve_identity(_request()) is None

    def test_bool_state_ignored(self):
        assert resolve_identity(_request(True)) is None


class TestTrustedHeader:
    def test_header_used_without_state(self, trust_header):
        assert resolve_identity(_request(headers={"X-User-ID": "9"})) == 9

    def test_state_wins_over_header(self, trust_header):
        assert resolve_identity(_request(5, {"X-User-ID": "9"})) == 5

    @pytest.mark.parametrize("raw", ["abc", "0", "-3", "", "1.5"])
    def test_malformed_header_is_anonymous(self, trust_header, raw):
        assert resolve_identity(_request(headers={"X-User-ID": raw})) is None
