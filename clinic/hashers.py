"""
Password hashing.

Django's bcrypt hasher fixes its cost factor as a class attribute; this
subclass reads it from ``settings.BCRYPT_ROUNDS`` instead so that the
factor can be raised in production and lowered in tests.
"""
from django.conf import settings
from django.contrib.auth.hashers import BCryptSHA256PasswordHasher


class ConfigurableBCryptSHA256PasswordHasher(BCryptSHA256PasswordHasher):
    @property
    def rounds(self) -> int:
        return int(getattr(settings, 'BCRYPT_ROUNDS', 12))
