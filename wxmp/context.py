"""
Per-account context shared by every exchange of that account.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TrustMode(str, Enum):
    """
    How much an account trusts unsigned or unencrypted pushes.

    - plain: plaintext messages, signature failures only logged
    - permissive: messages may carry ciphertext, failures logged but not blocking
    - strict: ciphertext required, failures reject the exchange
    """
    PLAIN = "plain"
    PERMISSIVE = "permissive"
    STRICT = "strict"


class AccountContext(BaseModel):
    """
    Immutable account configuration.

    Built once at configuration time and shared read-only across
    concurrent requests for the account.
    """
    model_config = ConfigDict(frozen=True)

    account_id: str = Field(..., description="Official account id (gh_...)")
    app_id: str = Field(..., min_length=1, description="Developer application id")
    app_secret: str = Field(default="", description="Developer application secret")
    token: str = Field(..., min_length=1, description="Token shared with the platform for signatures")
    key: Optional[str] = Field(default=None, description="43-character base64 EncodingAESKey")
    mode: TrustMode = Field(default=TrustMode.PLAIN, description="Trust mode")

    @model_validator(mode="after")
    def require_key_for_ciphertext(self) -> "AccountContext":
        """Non-plain modes exchange ciphertext and need the key."""
        if self.mode is not TrustMode.PLAIN and not self.key:
            raise ValueError(f"account {self.account_id!r} in {self.mode.value} mode needs a key")
        return self

    @property
    def strict(self) -> bool:
        return self.mode is TrustMode.STRICT

    @property
    def plain(self) -> bool:
        return self.mode is TrustMode.PLAIN
