"""
Generic OTP lifecycle engine.

One engine instance serves one flow (see OtpPolicy) against one OtpStore.

Record states:

    NONE → ACTIVE → VERIFIED → CONSUMED      (two-stage: token redeemed)
                  → CONSUMED                 (single-stage success)
                  → CONSUMED (exhausted)     (attempts reached max_attempts)
                  → CONSUMED (superseded)    (a newer request for the identity)
                  → EXPIRED                  (lazily, at verify time)

All coordination state lives in the store; concurrent calls for one identity
are not locked.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from errors import (
    ConfigurationError,
    InvalidTokenError,
    OtpAlreadyUsedError,
    OtpAttemptsExceededError,
    OtpExpiredError,
    OtpInvalidError,
    SessionExpiredError,
)
from repositories.otp_repository import OtpStore
from schemas.models.otp import OtpRecordDoc
from services.otp.policy import OtpPolicy
from services.otp.tokens import mint_reset_token
from shared.crypto import constant_time_equals, hash_secret
from shared.datetime_utils import ensure_utc, utcnow
from shared.generators import generate_salt
from shared.logging import get_logger

log = get_logger(__name__)

MSG_EXPIRED = "OTP expired"
MSG_INVALID = "Invalid OTP"
MSG_TOO_MANY_ATTEMPTS = "Too many attempts. Please request a new OTP."
MSG_ALREADY_USED = "OTP already used. Please request a new OTP."
MSG_SESSION_EXPIRED = "Session expired"
MSG_INVALID_TOKEN = "Invalid token"

# deliver(plaintext_secret, stored_record)
Deliver = Callable[[str, OtpRecordDoc], Awaitable[None]]


@dataclass(frozen=True)
class RequestContext:
    """Audit metadata stored alongside an issued OTP."""

    requester_ip: Optional[str] = None
    requester_user_agent: Optional[str] = None


@dataclass(frozen=True)
class IssueResult:
    throttled: bool
    record: Optional[OtpRecordDoc] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        return self.record.expires_at if self.record else None


@dataclass(frozen=True)
class VerifyResult:
    record: OtpRecordDoc
    verified_at: datetime
    # Two-stage flows only: plaintext follow-up token and its deadline
    token: Optional[str] = None
    token_expires_at: Optional[datetime] = None


class OtpEngine:
    def __init__(
        self,
        store: OtpStore,
        policy: OtpPolicy,
        pepper: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not pepper:
            raise ConfigurationError("Missing OTP_PEPPER")
        self._store = store
        self._policy = policy
        self._pepper = pepper
        self._clock = clock
        self._log = log.bind(flow=policy.name)

    @property
    def policy(self) -> OtpPolicy:
        return self._policy

    def _hash(self, secret: str, salt: str) -> str:
        return hash_secret(secret, salt, self._pepper)

    # ── Issue ────────────────────────────────────────────────────────────────

    async def request(
        self,
        identity_key: str,
        deliver: Deliver,
        context: Optional[RequestContext] = None,
    ) -> IssueResult:
        """Issue a fresh OTP for *identity_key* unless one was issued within the cooldown.

        The cooldown check ignores expiry: an expired but
        unconsumed row still means "issued very recently". Older active rows
        are consumed before the new secret exists, so the identity never has
        two active rows.

        Raises:
            StoreError: the store rejected a read or write.
            DeliveryError / ConfigurationError: the message could not be sent;
                the inserted row stays behind, undeliverable and inert.
        """
        now = self._clock()
        latest = await self._store.find_latest_active(identity_key)
        if latest is not None and now - ensure_utc(latest.created_at) < self._policy.cooldown:
            self._log.info("otp_throttled", record_id=str(latest.id))
            return IssueResult(throttled=True)

        superseded = await self._store.consume_active(identity_key, now)

        secret = self._policy.generate_secret()
        salt = generate_salt()
        ctx = context or RequestContext()
        record = OtpRecordDoc(
            identity_key=identity_key,
            secret_hash=self._hash(secret, salt),
            salt=salt,
            attempts=0,
            created_at=now,
            expires_at=now + self._policy.ttl,
            requester_ip=ctx.requester_ip,
            requester_user_agent=ctx.requester_user_agent,
        )
        record.id = await self._store.insert(record)
        self._log.info("otp_issued", record_id=str(record.id), superseded=superseded)

        try:
            await deliver(secret, record)
        except Exception as exc:
            self._log.warning(
                "otp_delivery_failed",
                record_id=str(record.id),
                error_type=type(exc).__name__,
            )
            raise

        return IssueResult(throttled=False, record=record)

    # ── Verify ───────────────────────────────────────────────────────────────

    async def verify(self, identity_key: str, submitted: str) -> VerifyResult:
        """Check *submitted* against the identity's newest OTP.

        Single-stage flows consume the record on success; the caller runs
        its downstream action afterwards. Two-stage flows mark the record
        verified, store a freshly minted token's hash with the token's own
        deadline and hand the plaintext token back.

        Raises:
            OtpExpiredError: no record, the record is past expires_at, or it
                was superseded before being redeemed.
            OtpAlreadyUsedError: the record was already redeemed.
            OtpAttemptsExceededError: the record is (or just became) exhausted.
            OtpInvalidError: wrong secret; attempts_remaining in details.
        """
        now = self._clock()
        record = await self._store.find_latest(identity_key)
        if record is None:
            raise OtpExpiredError(MSG_EXPIRED)

        max_attempts = self._policy.max_attempts
        if record.is_consumed:
            if record.attempts >= max_attempts:
                raise OtpAttemptsExceededError(MSG_TOO_MANY_ATTEMPTS)
            if record.is_verified:
                raise OtpAlreadyUsedError(MSG_ALREADY_USED)
            # Superseded without ever being redeemed
            raise OtpExpiredError(MSG_EXPIRED)
        if record.is_verified:
            raise OtpAlreadyUsedError(MSG_ALREADY_USED)
        if record.is_expired(now):
            raise OtpExpiredError(MSG_EXPIRED)
        if record.attempts >= max_attempts:
            await self._store.patch(record.id, {"consumed_at": now})
            raise OtpAttemptsExceededError(MSG_TOO_MANY_ATTEMPTS)

        if not constant_time_equals(record.secret_hash, self._hash(submitted, record.salt)):
            attempts = record.attempts + 1
            fields: dict = {"attempts": attempts}
            exhausted = attempts >= max_attempts
            if exhausted:
                fields["consumed_at"] = now
            await self._store.patch(record.id, fields)

            self._log.info(
                "otp_verify_failed",
                record_id=str(record.id),
                attempts=attempts,
                exhausted=exhausted,
            )
            if exhausted:
                raise OtpAttemptsExceededError(MSG_TOO_MANY_ATTEMPTS)
            raise OtpInvalidError(
                MSG_INVALID,
                details={"attempts": attempts, "attempts_remaining": max_attempts - attempts},
            )

        if not self._policy.two_stage:
            await self._store.patch(record.id, {"verified_at": now, "consumed_at": now})
            self._log.info("otp_verified", record_id=str(record.id))
            return VerifyResult(record=record, verified_at=now)

        minted = mint_reset_token(
            self._pepper, self._policy.token_ttl, now, self._policy.token_bytes
        )
        await self._store.patch(
            record.id,
            {
                "verified_at": now,
                "token_hash": minted.token_hash,
                "token_salt": minted.token_salt,
                "expires_at": minted.expires_at,
            },
        )
        self._log.info("otp_verified", record_id=str(record.id), two_stage=True)
        return VerifyResult(
            record=record,
            verified_at=now,
            token=minted.token,
            token_expires_at=minted.expires_at,
        )

    # ── Two-stage follow-up ──────────────────────────────────────────────────

    async def redeem_token(self, identity_key: str, token: str) -> OtpRecordDoc:
        """Re-validate a follow-up token minted by :meth:`verify`.

        Does not consume the record; call :meth:`consume` once the privileged
        action has been settled.

        Raises:
            SessionExpiredError: no live, verified, unconsumed record.
            InvalidTokenError: the token does not match the stored hash.
        """
        now = self._clock()
        record = await self._store.find_latest_active(
            identity_key, live_at=now, verified_only=True
        )
        if (
            record is None
            or record.is_expired(now)
            or not record.token_hash
            or not record.token_salt
        ):
            raise SessionExpiredError(MSG_SESSION_EXPIRED)

        if not constant_time_equals(record.token_hash, self._hash(token, record.token_salt)):
            self._log.info("reset_token_rejected", record_id=str(record.id))
            raise InvalidTokenError(MSG_INVALID_TOKEN)

        self._log.info("reset_token_redeemed", record_id=str(record.id))
        return record

    async def consume(self, record: OtpRecordDoc) -> None:
        await self._store.patch(record.id, {"consumed_at": self._clock()})
