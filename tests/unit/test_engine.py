"""Unit tests for the OTP lifecycle engine (services/otp)."""

from datetime import timedelta

import pytest

from errors import (
    ConfigurationError,
    DeliveryError,
    InvalidTokenError,
    OtpAlreadyUsedError,
    OtpAttemptsExceededError,
    OtpExpiredError,
    OtpInvalidError,
    SessionExpiredError,
    StoreError,
)
from services.otp import OtpEngine, OtpPolicy, RequestContext
from shared.crypto import hash_secret
from shared.generators import generate_otp_code

KEY = "user-1:+919876543210"


# ── Helpers ───────────────────────────────────────────────────────────────────


def _policy(**overrides) -> OtpPolicy:
    base = dict(
        name="test",
        ttl=timedelta(minutes=10),
        cooldown=timedelta(seconds=10),
        generate_secret=generate_otp_code,
    )
    base.update(overrides)
    return OtpPolicy(**base)


class Outbox:
    """deliver callback that remembers every secret it was handed."""

    def __init__(self):
        self.secrets = []

    async def __call__(self, secret, record):
        self.secrets.append(secret)

    @property
    def last(self):
        return self.secrets[-1]


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def engine(store, pepper, clock):
    return OtpEngine(store, _policy(), pepper, clock)


@pytest.fixture
def reset_engine(store, pepper, clock):
    return OtpEngine(store, _policy(name="reset", two_stage=True), pepper, clock)


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


# ── Construction ──────────────────────────────────────────────────────────────


class TestConstruction:
    def test_missing_pepper_raises_configuration_error(self, store, clock):
        with pytest.raises(ConfigurationError) as exc_info:
            OtpEngine(store, _policy(), "", clock)
        assert exc_info.value.message == "Missing OTP_PEPPER"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_attempts": 0},
            {"ttl": timedelta(0)},
            {"cooldown": timedelta(seconds=-1)},
        ],
    )
    def test_policy_rejects_nonsense(self, overrides):
        with pytest.raises(ValueError):
            _policy(**overrides)

    def test_policy_ttl_minutes(self):
        assert _policy().ttl_minutes == 10
        assert _policy(ttl=timedelta(minutes=1)).ttl_minutes == 1


# ── request ───────────────────────────────────────────────────────────────────


class TestRequest:
    async def test_issues_hashed_record(self, engine, store, outbox, pepper, clock):
        result = await engine.request(KEY, outbox, RequestContext("203.0.113.7", "pytest"))

        assert result.throttled is False
        assert result.expires_at == clock.now + timedelta(minutes=10)
        [row] = store.rows
        assert row.attempts == 0
        assert row.consumed_at is None
        assert row.requester_ip == "203.0.113.7"
        assert row.requester_user_agent == "pytest"
        # Only the salted, peppered hash is stored
        assert outbox.last not in (row.secret_hash, row.salt)
        assert row.secret_hash == hash_secret(outbox.last, row.salt, pepper)

    async def test_second_request_inside_cooldown_is_throttled(self, engine, store, outbox, clock):
        await engine.request(KEY, outbox)
        clock.advance(seconds=9)
        result = await engine.request(KEY, outbox)

        assert result.throttled is True
        assert result.expires_at is None
        assert len(store.rows) == 1
        assert len(outbox.secrets) == 1

    async def test_cooldown_ignores_expiry(self, store, pepper, clock, outbox):
        engine = OtpEngine(
            store, _policy(ttl=timedelta(seconds=5), cooldown=timedelta(seconds=30)), pepper, clock
        )
        await engine.request(KEY, outbox)
        clock.advance(seconds=20)  # expired, still inside cooldown
        result = await engine.request(KEY, outbox)
        assert result.throttled is True

    async def test_request_after_cooldown_supersedes_old_record(self, engine, store, outbox, clock):
        await engine.request(KEY, outbox)
        first_secret = outbox.last
        clock.advance(seconds=11)
        result = await engine.request(KEY, outbox)

        assert result.throttled is False
        assert len(store.rows) == 2
        assert len(store.active(KEY)) == 1
        assert store.rows[0].consumed_at == clock.now

        if first_secret != outbox.last:
            with pytest.raises(OtpInvalidError):
                await engine.verify(KEY, first_secret)
        await engine.verify(KEY, outbox.last)

    async def test_superseded_record_is_expired_not_used(self, engine, store, outbox, clock, mocker):
        await engine.request(KEY, outbox)
        first_secret = outbox.last
        clock.advance(seconds=30)
        mocker.patch.object(store, "insert", side_effect=StoreError("Failed to create OTP"))
        with pytest.raises(StoreError):
            await engine.request(KEY, outbox)

        assert store.rows[0].consumed_at == clock.now
        with pytest.raises(OtpExpiredError):
            await engine.verify(KEY, first_secret)

    async def test_identities_are_independent(self, engine, store, outbox):
        await engine.request(KEY, outbox)
        result = await engine.request("user-2:+919876543210", outbox)
        assert result.throttled is False
        assert len(store.rows) == 2

    async def test_delivery_failure_propagates(self, engine, store):
        async def broken(secret, record):
            raise DeliveryError("Failed to send email")

        with pytest.raises(DeliveryError):
            await engine.request(KEY, broken)
        # The inserted row stays behind; the plaintext went nowhere
        assert len(store.rows) == 1

    async def test_deliver_receives_stored_record(self, engine, store):
        seen = []

        async def deliver(secret, record):
            seen.append(record)

        await engine.request(KEY, deliver)
        assert seen[0].id == store.rows[0].id


# ── verify (single stage) ─────────────────────────────────────────────────────


class TestVerify:
    async def test_no_record_is_expired(self, engine):
        with pytest.raises(OtpExpiredError) as exc_info:
            await engine.verify(KEY, "123456")
        assert exc_info.value.message == "OTP expired"

    async def test_correct_code_consumes_record(self, engine, store, outbox, clock):
        await engine.request(KEY, outbox)
        clock.advance(seconds=30)
        result = await engine.verify(KEY, outbox.last)

        assert result.token is None
        assert result.verified_at == clock.now
        row = store.rows[0]
        assert row.verified_at == clock.now
        assert row.consumed_at == clock.now

    async def test_replay_after_success_is_rejected(self, engine, outbox):
        await engine.request(KEY, outbox)
        await engine.verify(KEY, outbox.last)
        with pytest.raises(OtpAlreadyUsedError):
            await engine.verify(KEY, outbox.last)

    async def test_wrong_code_counts_attempt(self, engine, store, outbox):
        await engine.request(KEY, outbox)
        with pytest.raises(OtpInvalidError) as exc_info:
            await engine.verify(KEY, _wrong(outbox.last))

        assert exc_info.value.details == {"attempts": 1, "attempts_remaining": 4}
        assert store.rows[0].attempts == 1
        assert store.rows[0].consumed_at is None

    async def test_expired_code_rejected_even_if_correct(self, engine, outbox, clock):
        await engine.request(KEY, outbox)
        clock.advance(minutes=10)
        with pytest.raises(OtpExpiredError):
            await engine.verify(KEY, outbox.last)

    async def test_fifth_wrong_attempt_exhausts_record(self, engine, store, outbox):
        await engine.request(KEY, outbox)
        wrong = _wrong(outbox.last)
        for _ in range(4):
            with pytest.raises(OtpInvalidError):
                await engine.verify(KEY, wrong)

        with pytest.raises(OtpAttemptsExceededError):
            await engine.verify(KEY, wrong)
        assert store.rows[0].attempts == 5
        assert store.rows[0].consumed_at is not None

        # The right code no longer helps
        with pytest.raises(OtpAttemptsExceededError):
            await engine.verify(KEY, outbox.last)

    async def test_exhausted_but_unconsumed_row_is_consumed_on_sight(self, engine, store, outbox, clock):
        await engine.request(KEY, outbox)
        store.rows[0].attempts = 5
        with pytest.raises(OtpAttemptsExceededError):
            await engine.verify(KEY, outbox.last)
        assert store.rows[0].consumed_at == clock.now

    async def test_other_pepper_cannot_verify(self, store, outbox, clock):
        issuer = OtpEngine(store, _policy(), "pepper-a", clock)
        checker = OtpEngine(store, _policy(), "pepper-b", clock)
        await issuer.request(KEY, outbox)
        with pytest.raises(OtpInvalidError):
            await checker.verify(KEY, outbox.last)


# ── verify + redeem (two stage) ───────────────────────────────────────────────


class TestTwoStage:
    async def test_verify_mints_token_without_consuming(self, reset_engine, store, outbox, clock):
        await reset_engine.request(KEY, outbox)
        clock.advance(minutes=2)
        result = await reset_engine.verify(KEY, outbox.last)

        row = store.rows[0]
        assert result.token
        assert result.token_expires_at == clock.now + timedelta(minutes=15)
        assert row.verified_at == clock.now
        assert row.consumed_at is None
        assert row.expires_at == result.token_expires_at
        assert row.token_hash and row.token_salt
        assert result.token not in row.model_dump_json()

    async def test_verify_twice_is_rejected(self, reset_engine, outbox):
        await reset_engine.request(KEY, outbox)
        await reset_engine.verify(KEY, outbox.last)
        with pytest.raises(OtpAlreadyUsedError):
            await reset_engine.verify(KEY, outbox.last)

    async def test_redeem_then_consume(self, reset_engine, store, outbox):
        await reset_engine.request(KEY, outbox)
        result = await reset_engine.verify(KEY, outbox.last)

        record = await reset_engine.redeem_token(KEY, result.token)
        assert record.id == store.rows[0].id
        assert store.rows[0].consumed_at is None

        await reset_engine.consume(record)
        with pytest.raises(SessionExpiredError):
            await reset_engine.redeem_token(KEY, result.token)

    async def test_wrong_token_is_rejected(self, reset_engine, outbox):
        await reset_engine.request(KEY, outbox)
        await reset_engine.verify(KEY, outbox.last)
        with pytest.raises(InvalidTokenError) as exc_info:
            await reset_engine.redeem_token(KEY, "x" * 43)
        assert exc_info.value.message == "Invalid token"

    async def test_token_expires_after_fifteen_minutes(self, reset_engine, outbox, clock):
        await reset_engine.request(KEY, outbox)
        result = await reset_engine.verify(KEY, outbox.last)
        clock.advance(minutes=15)
        with pytest.raises(SessionExpiredError) as exc_info:
            await reset_engine.redeem_token(KEY, result.token)
        assert exc_info.value.message == "Session expired"

    async def test_redeem_without_verify_is_session_expired(self, reset_engine, outbox):
        await reset_engine.request(KEY, outbox)
        with pytest.raises(SessionExpiredError):
            await reset_engine.redeem_token(KEY, "x" * 43)

    async def test_new_request_invalidates_pending_token(self, reset_engine, outbox, clock):
        await reset_engine.request(KEY, outbox)
        result = await reset_engine.verify(KEY, outbox.last)
        clock.advance(seconds=11)
        await reset_engine.request(KEY, outbox)
        with pytest.raises(SessionExpiredError):
            await reset_engine.redeem_token(KEY, result.token)

    async def test_token_is_bound_to_its_identity(self, reset_engine, store, outbox):
        await reset_engine.request(KEY, outbox)
        result = await reset_engine.verify(KEY, outbox.last)

        with pytest.raises(SessionExpiredError):
            await reset_engine.redeem_token("user-2:+919876543210", result.token)
        assert store.rows[0].consumed_at is None
        assert (await reset_engine.redeem_token(KEY, result.token)).id == store.rows[0].id
