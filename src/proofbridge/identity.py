"""Identity Provider view of the signed-in user."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UserIdentity(BaseModel):
    """Stable identifiers exposed by the Identity Provider."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str | None = None
    wallet_address: str | None = None

    def bearer_token(self) -> str:
        """Return the token the Ledger API expects in ``Authorization``."""

        return f"privy_{self.user_id}_{self.email or 'user'}"


__all__ = ["UserIdentity"]
