"""
Staff account tests.

Verifies:
- Passwords are stored as bcrypt hashes and never serialized
- Usernames are unique
- Role, username, password, email and mobile number rules
- Updates re-hash only when a new password is supplied
"""

import pytest

from shopledger.database import ConstraintViolation
from shopledger.services import user_service
from shopledger.services.user_service import UserError
from shopledger.validation import ValidationError


def _patch(**overrides) -> dict:
    data = {"username": "dana", "name": "Dana Cashier", "role": "user"}
    data.update(overrides)
    return data


class TestCreateUser:

    def test_password_is_hashed(self, ctx, fetch):
        user = user_service.create_user(_patch(), "secret1")

        row = fetch("users", user.id)
        assert row["password_hash"] != "secret1"
        assert row["password_hash"].startswith("$2")
        assert user_service.verify_password("secret1", row["password_hash"])
        assert not user_service.verify_password("secret2", row["password_hash"])

    def test_hash_is_not_serialized(self, ctx):
        user = user_service.create_user(_patch(email="dana@shop.test"), "secret1")

        body = user.to_dict()
        assert "password_hash" not in body
        assert "password" not in body
        assert body["username"] == "dana"
        assert body["role"] == "user"
        assert body["email"] == "dana@shop.test"

    def test_duplicate_username(self, ctx):
        user_service.create_user(_patch(), "secret1")

        with pytest.raises(ConstraintViolation) as exc_info:
            user_service.create_user(_patch(name="Other Dana"), "secret2")

        assert str(exc_info.value) == "Username already exists"
        assert exc_info.value.is_unique is True
        _, total = user_service.list_users(limit=10, offset=0)
        assert total == 1

    @pytest.mark.parametrize(
        "overrides,password",
        [
            ({"role": "superuser"}, "secret1"),
            ({"username": "dj"}, "secret1"),
            ({"email": "not-an-address"}, "secret1"),
            ({"mobile_number": "0712345678"}, "secret1"),
            ({}, "short"),
            ({}, None),
        ],
    )
    def test_invalid_accounts(self, ctx, overrides, password):
        with pytest.raises(ValidationError):
            user_service.create_user(_patch(**overrides), password)

        _, total = user_service.list_users(limit=10, offset=0)
        assert total == 0

    def test_mobile_number_pattern_is_configurable(self, ctx):
        ctx.config["MOBILE_NUMBER_PATTERN"] = r"\+1\d{10}"

        user = user_service.create_user(_patch(mobile_number="+15551234567"), "secret1")

        assert user.mobile_number == "+15551234567"


class TestUpdateUser:

    def test_update_without_password_keeps_hash(self, ctx, fetch):
        user = user_service.create_user(_patch(), "secret1")
        before = fetch("users", user.id)["password_hash"]

        user_service.update_user(user.id, {"role": "admin", "name": "Dana Manager"})

        row = fetch("users", user.id)
        assert row["role"] == "admin"
        assert row["name"] == "Dana Manager"
        assert row["password_hash"] == before

    def test_update_with_password_rehashes(self, ctx, fetch):
        user = user_service.create_user(_patch(), "secret1")

        user_service.update_user(user.id, {}, password="brand-new")

        row = fetch("users", user.id)
        assert user_service.verify_password("brand-new", row["password_hash"])
        assert not user_service.verify_password("secret1", row["password_hash"])

    def test_rename_onto_existing_username(self, ctx):
        user_service.create_user(_patch(username="dana"), "secret1")
        eli = user_service.create_user(_patch(username="eli", name="Eli"), "secret1")

        with pytest.raises(ConstraintViolation):
            user_service.update_user(eli.id, {"username": "dana"})

    def test_unknown_user(self, ctx):
        with pytest.raises(UserError):
            user_service.update_user(4242, {"name": "Nobody"})


class TestDeleteUser:

    def test_delete(self, ctx):
        user = user_service.create_user(_patch(), "secret1")

        user_service.delete_user(user.id)

        assert user_service.get_user(user.id) is None

    def test_unknown_user(self, ctx):
        with pytest.raises(UserError):
            user_service.delete_user(4242)


class TestPasswords:

    def test_malformed_hash_never_matches(self):
        assert user_service.verify_password("secret1", "not-a-bcrypt-hash") is False
