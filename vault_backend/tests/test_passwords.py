import hashlib
import unittest

from vault_backend import passwords


class PasswordTests(unittest.TestCase):
    def test_hash_is_salted(self):
        first = passwords.hash_password("secret123")
        second = passwords.hash_password("secret123")
        self.assertNotEqual(first, second)
        self.assertTrue(passwords.verify_password("secret123", first))
        self.assertFalse(passwords.verify_password("secret124", first))
        self.assertFalse(passwords.is_legacy_hash(first))

    def test_legacy_sha256_hash(self):
        legacy = hashlib.sha256(b"secret123").hexdigest()
        self.assertTrue(passwords.is_legacy_hash(legacy))
        self.assertTrue(passwords.verify_password("secret123", legacy))
        self.assertFalse(passwords.verify_password("other", legacy))

    def test_malformed_or_empty_hash(self):
        self.assertFalse(passwords.verify_password("secret123", ""))
        self.assertFalse(passwords.verify_password("secret123", "not-a-hash"))


if __name__ == "__main__":
    unittest.main()
