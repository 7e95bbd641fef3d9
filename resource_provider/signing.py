"""HMAC-SHA256 signing of envelopes exchanged between provider and consumers.

The signature covers the canonical encoding of the envelope body: compact
JSON with sorted keys over ``resource``, ``realm`` and ``service``. No
timestamps or nonces are mixed in, so a stateless consumer holding the shared
secret can recompute it.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Mapping, Optional

from resource_provider.exceptions import SignatureConfigurationError

SIGNED_FIELDS = ("resource", "realm", "service")


def sign(secret: str, body: bytes) -> str:
    """Compute HMAC-SHA256 hex digest for *body* using *secret*."""
    if not secret:
        raise SignatureConfigurationError("A shared secret is required for signing")
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def canonical_body(fields: Mapping[str, Any]) -> bytes:
    """Return the canonical byte encoding of the signed envelope fields."""
    signed = {name: fields.get(name) for name in SIGNED_FIELDS}
    return json.dumps(signed, sort_keys=True, separators=(",", ":")).encode()


class Signer:
    """Signs and verifies envelope bodies with one shared secret.

    Construction fails with :class:`SignatureConfigurationError` when the
    secret is missing, so a misconfigured provider stops at startup instead
    of on its first propagation.
    """

    def __init__(self, secret: Optional[str]) -> None:
        if not secret:
            raise SignatureConfigurationError("PROVIDER_SECRET is not configured")
        self._secret = secret

    def sign(self, fields: Mapping[str, Any]) -> str:
        return sign(self._secret, canonical_body(fields))

    def verify(self, fields: Mapping[str, Any], signature: Optional[str]) -> bool:
        """Return True if *signature* matches the signature of *fields*."""
        if not signature:
            return False
        return hmac.compare_digest(self.sign(fields), signature)
