"""Owner token verification and device credential checks.

Tokens are issued by the external account service as HS256 JWTs carrying
``userId`` and ``bulbId`` claims; this service only verifies them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt

from datastore.device_registry import DeviceRegistry
from services.errors import UnauthorizedError


@dataclass(frozen=True)
class OwnerIdentity:
    user_id: str
    bulb_id: str


class TokenVerifier:
    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    def verify(self, token: str) -> OwnerIdentity:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.InvalidTokenError as exc:
            raise UnauthorizedError("Token is invalid or expired") from exc

        user_id = claims.get("userId")
        bulb_id = claims.get("bulbId")
        if user_id is None or not isinstance(bulb_id, str) or not bulb_id:
            raise UnauthorizedError("Token is invalid or expired")
        return OwnerIdentity(user_id=str(user_id), bulb_id=bulb_id)

    def verify_header(self, authorization: Optional[str]) -> OwnerIdentity:
        """Verify a raw ``Authorization`` header value."""

        if not authorization:
            raise UnauthorizedError("Authorization header missing")
        if not authorization.startswith("Bearer "):
            raise UnauthorizedError("Invalid authorization format")
        return self.verify(authorization[len("Bearer "):].strip())


class DeviceCredentialChecker:
    def __init__(self, registry: DeviceRegistry) -> None:
        self._registry = registry

    def check(self, device_id: Optional[str], key: Optional[str]) -> bool:
        if not device_id or not key:
            return False
        return self._registry.check_secret(device_id, key)

    def require(self, device_id: Optional[str], key: Optional[str]) -> str:
        if not device_id or not key or not self._registry.check_secret(device_id, key):
            raise UnauthorizedError("Unauthorized device")
        return device_id
