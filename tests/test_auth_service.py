import unittest

from chatrelay.core.config import Settings
from chatrelay.services.auth_service import (
    AuthSession,
    decode_session_token,
    issue_session_token,
    session_from_cookies,
)


class TestSessionTokens(unittest.TestCase):

    def setUp(self):
        self.settings = Settings(SESSION_SECRET="test-secret")

    def test_round_trip(self):
        token = issue_session_token(AuthSession(user_id=7, nickname="Mia", is_admin=True), self.settings)

        session = decode_session_token(token, self.settings)

        self.assertEqual(session, AuthSession(user_id=7, nickname="Mia", is_admin=True))

    def test_wrong_secret(self):
        token = issue_session_token(AuthSession(user_id=7), Settings(SESSION_SECRET="other"))

        self.assertIsNone(decode_session_token(token, self.settings))

    def test_expired(self):
        token = issue_session_token(AuthSession(user_id=7), self.settings, expires_in=-10)

        self.assertIsNone(decode_session_token(token, self.settings))

    def test_garbage(self):
        self.assertIsNone(decode_session_token("not-a-token", self.settings))

    def test_cookies(self):
        token = issue_session_token(AuthSession(user_id=3), self.settings)

        self.assertEqual(session_from_cookies({"session_token": token}, self.settings).user_id, 3)
        self.assertIsNone(session_from_cookies({}, self.settings))
        self.assertIsNone(session_from_cookies({"other": token}, self.settings))


if __name__ == "__main__":
    unittest.main()
