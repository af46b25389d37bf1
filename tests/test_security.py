"""Unit tests for app.core.security: PBKDF2 hashing, legacy digests and upgrade reporting."""

import unittest

from app.core.config import MAX_PASSWORD_HASH_ITERATIONS
from app.core.crypto import b64url_decode
from app.core.security import (
    PASSWORD_DERIVED_KEY_LENGTH,
    PASSWORD_SALT_LENGTH,
    PasswordHasher,
    legacy_digest,
)
from auth_testing import CountingRandomSource


class TestHashFormat(unittest.TestCase):
    """hash() produces pbkdf2$<iterations>$<salt>$<key> with fixed sizes."""

    def test_tagged_format(self) -> None:
        hasher = PasswordHasher(1000, CountingRandomSource())
        stored = hasher.hash("s3cret-pass")
        scheme, iterations, salt, key = stored.split("$")
        self.assertEqual(scheme, "pbkdf2")
        self.assertEqual(iterations, "1000")
        self.assertEqual(len(b64url_decode(salt)), PASSWORD_SALT_LENGTH)
        self.assertEqual(len(b64url_decode(key)), PASSWORD_DERIVED_KEY_LENGTH)
        self.assertNotIn("=", stored)

    def test_salt_differs_per_hash(self) -> None:
        hasher = PasswordHasher(1000, CountingRandomSource())
        self.assertNotEqual(hasher.hash("same"), hasher.hash("same"))

    def test_same_random_bytes_give_same_hash(self) -> None:
        first = PasswordHasher(1000, CountingRandomSource()).hash("same")
        second = PasswordHasher(1000, CountingRandomSource()).hash("same")
        self.assertEqual(first, second)

    def test_iterations_are_capped(self) -> None:
        hasher = PasswordHasher(MAX_PASSWORD_HASH_ITERATIONS * 5)
        self.assertEqual(hasher.iterations, MAX_PASSWORD_HASH_ITERATIONS)

    def test_non_positive_iterations_rejected(self) -> None:
        with self.assertRaises(ValueError):
            PasswordHasher(0)


class TestVerify(unittest.TestCase):
    def setUp(self) -> None:
        self.hasher = PasswordHasher(1000, CountingRandomSource())

    def test_round_trip(self) -> None:
        stored = self.hasher.hash("correct horse")
        result = self.hasher.verify("correct horse", stored)
        self.assertTrue(result.valid)
        self.assertFalse(result.needs_upgrade)
        self.assertIsNone(result.new_hash)

    def test_wrong_password(self) -> None:
        stored = self.hasher.hash("correct horse")
        result = self.hasher.verify("battery staple", stored)
        self.assertFalse(result.valid)
        self.assertIsNone(result.new_hash)

    def test_unicode_password(self) -> None:
        stored = self.hasher.hash("mot de passe é")
        self.assertTrue(self.hasher.verify("mot de passe é", stored).valid)
        self.assertFalse(self.hasher.verify("mot de passe e", stored).valid)

    def test_empty_or_missing_stored_hash(self) -> None:
        self.assertFalse(self.hasher.verify("anything", "").valid)
        self.assertFalse(self.hasher.verify("anything", None).valid)

    def test_malformed_tagged_hashes(self) -> None:
        good = self.hasher.hash("pw")
        _, _, salt, key = good.split("$")
        for stored in (
            "pbkdf2$1000$" + salt,
            f"pbkdf2$1000${salt}${key}$extra",
            f"pbkdf2$many${salt}${key}",
            f"pbkdf2$1000$!!!!${key}",
            f"pbkdf2$1000${salt}$",
            f"pbkdf2$0${salt}${key}",
            f"pbkdf2${MAX_PASSWORD_HASH_ITERATIONS + 1}${salt}${key}",
        ):
            with self.subTest(stored=stored):
                self.assertFalse(self.hasher.verify("pw", stored).valid)


class TestLegacyDigest(unittest.TestCase):
    """Unsalted SHA-256 digests verify and are always flagged for upgrade."""

    def setUp(self) -> None:
        self.hasher = PasswordHasher(1000, CountingRandomSource())

    def test_legacy_match_needs_upgrade(self) -> None:
        stored = legacy_digest("correct")
        result = self.hasher.verify("correct", stored)
        self.assertTrue(result.valid)
        self.assertTrue(result.needs_upgrade)
        self.assertTrue(result.new_hash.startswith("pbkdf2$1000$"))

        upgraded = self.hasher.verify("correct", result.new_hash)
        self.assertTrue(upgraded.valid)
        self.assertFalse(upgraded.needs_upgrade)

    def test_legacy_uppercase_and_whitespace_tolerated(self) -> None:
        stored = "  " + legacy_digest("correct").upper() + "\n"
        self.assertTrue(self.hasher.verify("correct", stored).valid)

    def test_legacy_mismatch(self) -> None:
        result = self.hasher.verify("wrong", legacy_digest("correct"))
        self.assertFalse(result.valid)
        self.assertFalse(result.needs_upgrade)
        self.assertIsNone(result.new_hash)

    def test_known_digest(self) -> None:
        self.assertEqual(
            legacy_digest("abc"),
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad",
        )


class TestIterationUpgrade(unittest.TestCase):
    """A stored hash weaker than the configured cost is flagged for re-hashing."""

    def test_raising_iterations_flags_upgrade(self) -> None:
        stored = PasswordHasher(500, CountingRandomSource()).hash("pw")
        result = PasswordHasher(1000, CountingRandomSource()).verify("pw", stored)
        self.assertTrue(result.valid)
        self.assertTrue(result.needs_upgrade)
        self.assertTrue(result.new_hash.startswith("pbkdf2$1000$"))

    def test_per_call_iterations_override(self) -> None:
        hasher = PasswordHasher(500, CountingRandomSource())
        stored = hasher.hash("pw")
        self.assertFalse(hasher.verify("pw", stored).needs_upgrade)
        self.assertTrue(hasher.verify("pw", stored, iterations=800).needs_upgrade)

    def test_lower_configured_iterations_does_not_downgrade(self) -> None:
        stored = PasswordHasher(1000, CountingRandomSource()).hash("pw")
        result = PasswordHasher(500, CountingRandomSource()).verify("pw", stored)
        self.assertTrue(result.valid)
        self.assertFalse(result.needs_upgrade)


if __name__ == "__main__":
    unittest.main()
