"""Tests for password hashing helpers."""

from __future__ import annotations

import unittest

from adoptme.database import hash_password, verify_password


class PasswordHashingTests(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("supersecurepassword")

        self.assertTrue(hashed.startswith("$pbkdf2-sha256$"))
        self.assertTrue(verify_password("supersecurepassword", hashed))
        self.assertFalse(verify_password("incorrect", hashed))

    def test_hashes_are_salted(self) -> None:
        self.assertNotEqual(hash_password("samepassword"), hash_password("samepassword"))

    def test_missing_or_malformed_hash_never_verifies(self) -> None:
        self.assertFalse(verify_password("anything", None))
        self.assertFalse(verify_password("anything", ""))
        self.assertFalse(verify_password("anything", "not-a-known-hash"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
