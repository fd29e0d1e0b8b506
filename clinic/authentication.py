"""
Token authentication for the API.

Clients send ``Authorization: Bearer <key>``.  Keeping the class in its
own module gives settings a stable import path and avoids circular
imports when DRF loads authentication classes during start-up.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """DRF token authentication using the ``Bearer`` keyword."""

    keyword = 'Bearer'
