from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

KEY_AUTH_TOKEN = "authToken"
KEY_REFRESH_TOKEN = "refreshToken"
KEY_USER_ID = "userId"
KEY_TOKEN_TIMESTAMP = "tokenTimestamp"
CREDENTIAL_KEYS: tuple[str, ...] = (
    KEY_AUTH_TOKEN,
    KEY_REFRESH_TOKEN,
    KEY_USER_ID,
    KEY_TOKEN_TIMESTAMP,
)


@dataclass(frozen=True, slots=True)
class Credential:
    auth_token: str
    refresh_token: str | None
    subject_id: str
    issued_at_epoch_ms: int

    def is_fresh(self, *, now_epoch_ms: int, lifetime_ms: int, refresh_buffer_ms: int) -> bool:
        return now_epoch_ms < self.issued_at_epoch_ms + lifetime_ms - refresh_buffer_ms

    def to_store(self) -> dict[str, str]:
        return {
            KEY_AUTH_TOKEN: self.auth_token,
            KEY_REFRESH_TOKEN: self.refresh_token or "",
            KEY_USER_ID: self.subject_id,
            KEY_TOKEN_TIMESTAMP: str(self.issued_at_epoch_ms),
        }

    @classmethod
    def from_store(cls, values: Mapping[str, str | None]) -> Credential | None:
        auth_token = values.get(KEY_AUTH_TOKEN)
        subject_id = values.get(KEY_USER_ID)
        if not auth_token or not subject_id:
            return None

        # A token without an issue time cannot be proven fresh.
        raw_timestamp = values.get(KEY_TOKEN_TIMESTAMP) or ""
        issued_at = int(raw_timestamp) if raw_timestamp.isdigit() else 0

        return cls(
            auth_token=auth_token,
            refresh_token=values.get(KEY_REFRESH_TOKEN) or None,
            subject_id=subject_id,
            issued_at_epoch_ms=issued_at,
        )
