from catalog_sync.auth import make_token
from catalog_sync.config import settings

if not settings.SYNC_TOKEN_SECRET:
    raise SystemExit("SYNC_TOKEN_SECRET is not set")

print(make_token(settings.SYNC_TOKEN_SECRET))
