"""
Signed, time-limited URLs for assets in the blob store.
Uses itsdangerous so the token is tamper-proof and carries its own timestamp.
"""
from urllib.parse import quote

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ugcstudio.core.config import settings


class AssetUrlSigner:
    def __init__(
        self,
        secret: str | None = None,
        base_url: str | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self.serializer = URLSafeTimedSerializer(secret or settings.asset_url_secret, salt="asset-url")
        self.base_url = (base_url or settings.asset_public_base_url).rstrip("/")
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.asset_url_ttl_seconds

    def sign(self, storage_path: str) -> str:
        token = self.serializer.dumps(storage_path)
        return f"{self.base_url}/{quote(storage_path)}?token={token}"

    def verify(self, token: str) -> str | None:
        """Storage path the token was issued for, or None if tampered or expired."""
        try:
            path = self.serializer.loads(token, max_age=self.ttl_seconds)
        except (BadSignature, SignatureExpired):
            return None
        return path if isinstance(path, str) else None
