"""PayFast message signatures.

The provider dictates the algorithm, so the canonical form must stay bit-exact:

* drop the ``signature`` field and every field whose value is empty or missing;
* sort the remaining keys lexicographically;
* percent-encode each value the way ``encodeURIComponent`` does, with spaces as ``+``;
* join as ``k=v&k=v``;
* append ``&passphrase=<encoded>`` only when a non-empty passphrase is configured;
* lowercase hex MD5 over the UTF-8 bytes.

Inbound webhooks and outbound payout requests use the same function over different
field sets.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Mapping
from urllib.parse import quote_plus

logger = logging.getLogger(__name__)

SIGNATURE_FIELD = "signature"
# Characters encodeURIComponent leaves alone besides alphanumerics and "-_.~".
_SAFE_CHARS = "!*'()"


def _encode(value: Any) -> str:
    return quote_plus(str(value), safe=_SAFE_CHARS)


def canonical_form(fields: Mapping[str, Any], passphrase: str | None = None) -> str:
    """Return the string the signature is computed over."""

    parts = []
    for key in sorted(fields):
        if key == SIGNATURE_FIELD:
            continue
        value = fields[key]
        if value is None or str(value) == "":
            continue
        parts.append(f"{key}={_encode(value)}")
    canonical = "&".join(parts)
    if passphrase:
        canonical = f"{canonical}&passphrase={_encode(passphrase)}"
    return canonical


def compute_signature(fields: Mapping[str, Any], passphrase: str | None = None) -> str:
    canonical = canonical_form(fields, passphrase)
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


def verify_signature(
    fields: Mapping[str, Any], received: str | None, passphrase: str | None = None
) -> bool:
    """Recompute the signature and compare it to ``received`` in constant time."""

    if not received:
        return False
    expected = compute_signature(fields, passphrase)
    ok = hmac.compare_digest(expected, received.strip().lower())
    if not ok:
        logger.warning("Signature mismatch", extra={"field_count": len(fields)})
    return ok


def sign_payload(fields: Mapping[str, Any], passphrase: str | None = None) -> dict[str, str]:
    """Return a copy of ``fields`` with the computed ``signature`` appended."""

    signed = {key: str(value) for key, value in fields.items() if key != SIGNATURE_FIELD}
    signed[SIGNATURE_FIELD] = compute_signature(signed, passphrase)
    return signed


__all__ = ["canonical_form", "compute_signature", "verify_signature", "sign_payload"]
