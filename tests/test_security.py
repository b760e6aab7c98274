from __future__ import annotations

import unittest
from datetime import timedelta

from db_support import utc
from jose import jwt

from devsync.errors import ApiError
from devsync.models import User, UserRole
from devsync.security import (
    LoginThrottle,
    create_access_token,
    decode_token,
    hash_password,
    verify_password,
)
from devsync.settings import get_settings


class LoginThrottleTests(unittest.TestCase):
    def test_blocks_after_max_failures_within_window(self) -> None:
        throttle = LoginThrottle(max_attempts=3, window=timedelta(minutes=10))
        start = utc(2026, 3, 2, 9, 0)

        for minute in range(3):
            self.assertFalse(throttle.is_blocked("10.0.0.1", start + timedelta(minutes=minute)))
            throttle.record_failure("10.0.0.1", start + timedelta(minutes=minute))

        self.assertTrue(throttle.is_blocked("10.0.0.1", start + timedelta(minutes=3)))
        self.assertFalse(throttle.is_blocked("10.0.0.2", start + timedelta(minutes=3)))

    def test_old_failures_expire(self) -> None:
        throttle = LoginThrottle(max_attempts=2, window=timedelta(minutes=10))
        start = utc(2026, 3, 2, 9, 0)
        throttle.record_failure("10.0.0.1", start)
        throttle.record_failure("10.0.0.1", start + timedelta(minutes=1))

        self.assertTrue(throttle.is_blocked("10.0.0.1", start + timedelta(minutes=5)))
        self.assertFalse(throttle.is_blocked("10.0.0.1", start + timedelta(minutes=12)))

    def test_success_resets_counter(self) -> None:
        throttle = LoginThrottle(max_attempts=1, window=timedelta(minutes=10))
        now = utc(2026, 3, 2, 9, 0)
        throttle.record_failure("10.0.0.1", now)

        throttle.reset("10.0.0.1")

        self.assertFalse(throttle.is_blocked("10.0.0.1", now))


class TokenTests(unittest.TestCase):
    def setUp(self) -> None:
        self.user = User(id=7, name="Ada", email="ada@example.com", role=UserRole.HR)

    def test_token_carries_subject_and_role(self) -> None:
        token, expires_in = create_access_token(self.user)

        payload = decode_token(token)

        self.assertEqual(payload["sub"], "7")
        self.assertEqual(payload["role"], "hr")
        self.assertEqual(expires_in, get_settings().access_token_minutes * 60)

    def test_foreign_audience_is_rejected(self) -> None:
        settings = get_settings()
        token = jwt.encode(
            {"sub": "7", "iss": settings.jwt_issuer, "aud": "someone-else", "iat": 0, "exp": 4102444800},
            settings.jwt_secret,
            algorithm="HS256",
        )

        with self.assertRaises(ApiError) as ctx:
            decode_token(token)

        self.assertEqual(ctx.exception.code, "INVALID_TOKEN")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_password_hashing(self) -> None:
        hashed = hash_password("secret123")

        self.assertTrue(verify_password("secret123", hashed))
        self.assertFalse(verify_password("secret124", hashed))
        self.assertFalse(verify_password("secret123", "not-a-hash"))


if __name__ == "__main__":
    unittest.main()
