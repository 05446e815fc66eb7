"""Unit tests for auth/store.py -- UserStore and VerificationTokenStore.

Covers:
- email lookups are case-insensitive; usernames are exact
- soft-deleted users vanish from every lookup and free their email/username
- duplicate live email raises IntegrityError at the database
- delete_all_for_user() removes every token and reports how many
- mark_verified() succeeds once and refuses a second stamp
- db.transaction() rolls back all writes when the block raises
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import EmailVerificationToken, User


def _user(email: str = "erin@example.com", username: str = "erin") -> User:
    return User(email=email, username=username, hashed_password="$2b$12$notarealhash")


def _token(user_id: int, value: str, hours: int = 24) -> EmailVerificationToken:
    return EmailVerificationToken(
        token=value,
        user_id=user_id,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=hours),
    )


class TestUserStore:
    def test_create_and_fetch(self, user_store) -> None:
        uid = user_store.create_user(_user())
        user = user_store.get_by_id(uid)
        assert user is not None
        assert user.email == "erin@example.com"
        assert user.email_verified is False
        assert user.created_at is not None and user.created_at.tzinfo is not None

    def test_email_is_case_insensitive(self, user_store) -> None:
        user_store.create_user(_user(email="Erin@Example.COM"))
        assert user_store.exists_by_email("erin@example.com")
        assert user_store.get_by_email("ERIN@example.com") is not None

    def test_username_is_exact(self, user_store) -> None:
        user_store.create_user(_user())
        assert user_store.exists_by_username("erin")
        assert not user_store.exists_by_username("Erin")

    def test_duplicate_live_email_violates_index(self, user_store) -> None:
        user_store.create_user(_user())
        with pytest.raises(IntegrityError):
            user_store.create_user(_user(username="erin2"))

    def test_soft_deleted_user_is_invisible(self, user_store) -> None:
        uid = user_store.create_user(_user())
        assert user_store.soft_delete(uid)
        assert user_store.get_by_id(uid) is None
        assert user_store.get_by_email("erin@example.com") is None
        assert not user_store.exists_by_email("erin@example.com")
        assert not user_store.exists_by_username("erin")

    def test_soft_deleted_email_can_be_reused(self, user_store) -> None:
        uid = user_store.create_user(_user())
        user_store.soft_delete(uid)
        new_uid = user_store.create_user(_user())
        assert new_uid != uid

    def test_save_persists_verification_flag(self, user_store) -> None:
        uid = user_store.create_user(_user())
        user = user_store.get_by_id(uid)
        user.email_verified = True
        user_store.save(user)
        assert user_store.get_by_id(uid).email_verified is True


class TestVerificationTokenStore:
    def test_save_and_find(self, user_store, token_store) -> None:
        uid = user_store.create_user(_user())
        token_id = token_store.save(_token(uid, "tok-a"))
        found = token_store.find_by_token("tok-a")
        assert found is not None
        assert found.id == token_id
        assert found.user_id == uid
        assert found.verified_at is None
        assert token_store.find_by_token("tok-missing") is None

    def test_delete_all_for_user(self, user_store, token_store) -> None:
        uid = user_store.create_user(_user())
        other = user_store.create_user(_user(email="finn@example.com", username="finn"))
        token_store.save(_token(uid, "tok-1"))
        token_store.save(_token(uid, "tok-2"))
        token_store.save(_token(other, "tok-3"))
        assert token_store.delete_all_for_user(uid) == 2
        assert token_store.count_for_user(uid) == 0
        assert token_store.count_for_user(other) == 1
        assert token_store.delete_all_for_user(uid) == 0

    def test_mark_verified_only_once(self, user_store, token_store) -> None:
        uid = user_store.create_user(_user())
        token_id = token_store.save(_token(uid, "tok-once"))
        when = datetime.now(timezone.utc)
        assert token_store.mark_verified(token_id, when) is True
        assert token_store.mark_verified(token_id, when) is False
        assert token_store.find_by_token("tok-once").verified_at is not None

    def test_list_for_user_newest_first(self, user_store, token_store) -> None:
        uid = user_store.create_user(_user())
        token_store.save(_token(uid, "tok-old"))
        token_store.save(_token(uid, "tok-new"))
        assert [t.token for t in token_store.list_for_user(uid)] == ["tok-new", "tok-old"]


class TestTransaction:
    def test_rollback_discards_all_writes(self, db, user_store, token_store) -> None:
        with pytest.raises(RuntimeError):
            with db.transaction():
                uid = user_store.create_user(_user())
                token_store.save(_token(uid, "tok-rolled-back"))
                raise RuntimeError("boom")
        assert not user_store.exists_by_email("erin@example.com")
        assert token_store.find_by_token("tok-rolled-back") is None

    def test_commit_keeps_writes(self, db, user_store, token_store) -> None:
        with db.transaction():
            uid = user_store.create_user(_user())
            token_store.save(_token(uid, "tok-kept"))
        assert user_store.exists_by_email("erin@example.com")
        assert token_store.find_by_token("tok-kept") is not None
