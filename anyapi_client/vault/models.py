"""Session and vault status models, plus the backend wire payloads."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class VaultProvider(str, Enum):
    """Kind of secret storage behind the backend."""
    VAULT_MANAGER = "SecretManagement"
    OS_KEYCHAIN = "Keychain"
    IN_MEMORY = "PlainText_InMemory_Only"
    UNKNOWN = "Unknown"

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> "VaultProvider":
        if raw == "DPAPI_InMemory":
            return cls.IN_MEMORY
        for provider in cls:
            if provider.value == raw:
                return provider
        return cls.UNKNOWN


class VaultState(str, Enum):
    """Lock state consumed by UI indicators."""
    CHECKING = "checking"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass
class Session:
    """One authenticated client session. Owned by CredentialSession."""
    session_id: str
    token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def authenticated_at(self, now: datetime) -> bool:
        return self.token is not None and self.expires_at is not None and now < self.expires_at


@dataclass(frozen=True)
class VaultStatus:
    """The backend's belief about the secret vault."""
    provider: VaultProvider = VaultProvider.UNKNOWN
    available: bool = False
    unlocked: bool = False
    management_available: bool = False

    @classmethod
    def from_info(cls, info: "SecretStoreInfo") -> "VaultStatus":
        return cls(
            provider=VaultProvider.from_raw(info.provider),
            available=bool(info.is_secret_store_available),
            unlocked=bool(info.is_secret_store_unlocked),
            management_available=bool(info.is_secret_management_available),
        )


# --- Wire models ---

class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SecretStoreInfo(_WireModel):
    """Payload of GET /api/secrets/info."""
    provider: Optional[str] = None
    is_secret_management_available: Optional[bool] = Field(default=None, alias="isSecretManagementAvailable")
    is_secret_store_available: Optional[bool] = Field(default=None, alias="isSecretStoreAvailable")
    is_secret_store_unlocked: Optional[bool] = Field(default=None, alias="isSecretStoreUnlocked")

    @classmethod
    def from_response(cls, body: Any) -> "SecretStoreInfo":
        """Accept both the bare payload and the ``{success, storageInfo}`` envelope."""
        if isinstance(body, dict) and isinstance(body.get("storageInfo"), dict):
            body = body["storageInfo"]
        if not isinstance(body, dict):
            raise ValueError(f"Unexpected secrets info payload: {type(body).__name__}")
        return cls.model_validate(body)


class EncryptionMetadata(_WireModel):
    algorithm: str
    key_length: int = Field(alias="keyLength")
    key: str
    iv: str
    session_id: str = Field(alias="sessionId")
    timestamp: int


class SecureUnlockRequest(_WireModel):
    """Body of POST /api/auth/secure-unlock."""
    encrypted_password: str = Field(alias="encryptedPassword")
    encryption_metadata: EncryptionMetadata = Field(alias="encryptionMetadata")
    session_id: str = Field(alias="sessionId")
    is_secure_auth: bool = Field(default=True, alias="isSecureAuth")


class PlainUnlockRequest(_WireModel):
    """Body of POST /api/secrets/unlock."""
    password: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    is_secure_auth: bool = Field(default=False, alias="isSecureAuth")


class UnlockResponse(_WireModel):
    success: bool = False
    error: Optional[Any] = None


class SecureUnlockResponse(UnlockResponse):
    session_token: Optional[str] = Field(default=None, alias="sessionToken")
    expires_in: Optional[int] = Field(default=None, alias="expiresIn")
