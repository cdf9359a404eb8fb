"""Tests for the bcrypt password policy."""

from __future__ import annotations

import unittest

from chirpy import security


class PasswordHashingTests(unittest.TestCase):
    def setUp(self) -> None:
        security.configure_password_hashing(4)

    def tearDown(self) -> None:
        security.configure_password_hashing(security.DEFAULT_BCRYPT_ROUNDS)

    def test_hash_and_verify(self) -> None:
        hashed = security.hash_password("supersecurepassword")
        self.assertTrue(hashed.startswith("$2"))
        self.assertTrue(security.verify_password("supersecurepassword", hashed))
        self.assertFalse(security.verify_password("incorrect", hashed))

    def test_hashes_are_salted(self) -> None:
        self.assertNotEqual(security.hash_password("same"), security.hash_password("same"))

    def test_cost_factor_is_encoded_in_hash(self) -> None:
        self.assertIn("$04$", security.hash_password("secret"))

    def test_old_cost_still_verifies_after_reconfiguration(self) -> None:
        hashed = security.hash_password("secret")
        security.configure_password_hashing(5)
        self.assertTrue(security.verify_password("secret", hashed))

    def test_malformed_hash_does_not_verify(self) -> None:
        self.assertFalse(security.verify_password("secret", "not-a-hash"))
        self.assertFalse(security.verify_password("secret", ""))

    def test_invalid_configuration_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            security.configure_password_hashing(3)
        with self.assertRaises(ValueError):
            security.configure_password_hashing(32)

    def test_empty_password_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            security.hash_password("")

    def test_password_over_bcrypt_limit_is_rejected(self) -> None:
        self.assertEqual(security.MAX_PASSWORD_BYTES, 72)
        security.hash_password("A" * 72)
        with self.assertRaises(ValueError):
            security.hash_password("A" * 73)
        with self.assertRaises(ValueError):
            security.hash_password("\u00e9" * 37)

    def test_long_password_never_verifies(self) -> None:
        hashed = security.hash_password("A" * 72)
        self.assertFalse(security.verify_password("A" * 72 + "WRONG", hashed))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
