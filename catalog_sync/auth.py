# catalog_sync/auth.py
# Authenticity token for inbound sync triggers: base64 HMAC-SHA256 of the action group.
import base64, hmac, hashlib

TOKEN_ACTION = "catalog_sync"


def _b64_hmac_sha256(secret: str, body: bytes) -> str:
    mac = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(mac).decode("utf-8")


def make_token(secret: str, action: str = TOKEN_ACTION) -> str:
    return _b64_hmac_sha256(secret, action.encode("utf-8"))


def verify_token(received: str | None, secret: str, action: str = TOKEN_ACTION) -> bool:
    if not secret:
        return False
    return hmac.compare_digest(received or "", make_token(secret, action))
