"""Unit tests for admin authorization."""

import pytest

from enrollment_manager.auth import (
    AdminAction,
    AllowAllAuthorizer,
    AuthContext,
    TokenAuthorizer,
)


@pytest.mark.unit
class TestTokenAuthorizer:
    """Tests for TokenAuthorizer."""

    def test_matching_token(self) -> None:
        authorizer = TokenAuthorizer("s3cret")

        assert authorizer.authorize(AdminAction.LIST_REGISTRATIONS, AuthContext(token="s3cret"))

    def test_wrong_token(self) -> None:
        authorizer = TokenAuthorizer("s3cret")

        assert not authorizer.authorize(AdminAction.VIEW_STATS, AuthContext(token="guess"))

    @pytest.mark.parametrize("context", [None, AuthContext(), AuthContext(token="")])
    def test_missing_token(self, context) -> None:
        assert not TokenAuthorizer("s3cret").authorize(AdminAction.MERGE_STUDENTS, context)

    def test_no_token_configured_denies_everything(self) -> None:
        authorizer = TokenAuthorizer(None)

        assert not authorizer.authorize(AdminAction.MANAGE_SESSIONS, AuthContext(token=""))
        assert not authorizer.authorize(AdminAction.MANAGE_SESSIONS, AuthContext(token="None"))


@pytest.mark.unit
def test_allow_all() -> None:
    assert AllowAllAuthorizer().authorize(AdminAction.CANCEL_REGISTRATION, None)
