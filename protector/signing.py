"""HMAC-SHA256 signatures over ``{timestamp}.{raw_body}``.

There is no freshness window on the timestamp: a captured valid signature
can be replayed.
"""
import hmac
import hashlib


def sign(timestamp, raw_body, secret: str) -> str:
    if isinstance(raw_body, bytes):
        raw_body = raw_body.decode("utf-8")
    payload = "%s.%s" % (timestamp, raw_body)
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def verify(timestamp, raw_body, signature_hex, secret: str) -> bool:
    if not secret or not timestamp or not signature_hex:
        return False
    try:
        supplied = bytes.fromhex(signature_hex)
        expected = bytes.fromhex(sign(timestamp, raw_body, secret))
        return hmac.compare_digest(supplied, expected)
    except (TypeError, ValueError, UnicodeDecodeError):
        return False
