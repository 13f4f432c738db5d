"""
Tests for the OTPChallengeManager.

The clock is injected so expiry can be tested without sleeping.
"""

from datetime import datetime, timedelta

import pytest

from conftest import FakeMailer, TestSessionLocal
from maker_checker.errors import DependencyError, NotFoundError
from maker_checker.models.enums import OTPPurpose
from maker_checker.models.otp_challenge import OTPChallenge
from maker_checker.services.otp_service import OTPChallengeManager, OTPOutcome, generate_code

EMAIL = "new.user@example.com"


class FrozenClock:

    def __init__(self, now=datetime(2024, 1, 10, 12, 0)):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def wrong(code: str) -> str:
    return f"{(int(code) + 1) % 1_000_000:06d}"


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def otp(db_session, clock):
    return OTPChallengeManager(db_session, FakeMailer(), clock=clock)


def test_codes_are_six_zero_padded_digits():
    for _ in range(50):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()


class TestIssue:

    def test_only_digest_is_stored(self, db_session, otp):
        code = otp.issue(OTPPurpose.REGISTRATION, EMAIL, {"first_name": "Nia"})

        challenge = db_session.query(OTPChallenge).one()
        assert challenge.code_digest != code
        assert code not in challenge.code_digest
        assert challenge.attempts == 0
        assert challenge.payload == {"first_name": "Nia"}

    def test_expiry_is_five_minutes(self, db_session, otp, clock):
        otp.issue(OTPPurpose.REGISTRATION, EMAIL)

        challenge = db_session.query(OTPChallenge).one()
        assert challenge.expires_at == clock.now + timedelta(minutes=5)

    def test_reissue_for_key_replaces_previous(self, db_session, otp):
        old = otp.issue(OTPPurpose.REGISTRATION, EMAIL)
        new = otp.issue(OTPPurpose.REGISTRATION, EMAIL)

        assert db_session.query(OTPChallenge).count() == 1
        if old != new:
            assert otp.verify(OTPPurpose.REGISTRATION, EMAIL, old).outcome == OTPOutcome.MISMATCH
        assert otp.verify(OTPPurpose.REGISTRATION, EMAIL, new).matched

    def test_purposes_do_not_collide(self, otp):
        registration = otp.issue(OTPPurpose.REGISTRATION, "7")
        mfa = otp.issue(OTPPurpose.MFA_LOGIN, "7")

        assert otp.verify(OTPPurpose.MFA_LOGIN, "7", mfa).matched
        assert otp.verify(OTPPurpose.REGISTRATION, "7", registration).matched


class TestVerify:

    def test_match_returns_payload_and_consumes(self, db_session, otp):
        code = otp.issue(OTPPurpose.REGISTRATION, EMAIL, {"last_name": "Okafor"})

        result = otp.verify(OTPPurpose.REGISTRATION, EMAIL, code)

        assert result.outcome == OTPOutcome.MATCHED
        assert result.payload == {"last_name": "Okafor"}
        assert db_session.query(OTPChallenge).count() == 0
        assert otp.verify(OTPPurpose.REGISTRATION, EMAIL, code).outcome == OTPOutcome.MISSING

    def test_correct_code_on_third_attempt_succeeds(self, otp):
        code = otp.issue(OTPPurpose.REGISTRATION, EMAIL)

        assert otp.verify(OTPPurpose.REGISTRATION, EMAIL, wrong(code)).outcome == OTPOutcome.MISMATCH
        assert otp.verify(OTPPurpose.REGISTRATION, EMAIL, wrong(code)).outcome == OTPOutcome.MISMATCH
        assert otp.verify(OTPPurpose.REGISTRATION, EMAIL, code).matched

    def test_fourth_attempt_is_exhausted_even_if_correct(self, db_session, otp):
        code = otp.issue(OTPPurpose.REGISTRATION, EMAIL)

        outcomes = [
            otp.verify(OTPPurpose.REGISTRATION, EMAIL, wrong(code)).outcome
            for _ in range(3)
        ]
        assert outcomes == [OTPOutcome.MISMATCH] * 3

        assert otp.verify(OTPPurpose.REGISTRATION, EMAIL, code).outcome == OTPOutcome.EXHAUSTED
        assert db_session.query(OTPChallenge).count() == 0

    def test_expired_even_if_correct(self, db_session, otp, clock):
        code = otp.issue(OTPPurpose.REGISTRATION, EMAIL)
        clock.advance(minutes=5, seconds=1)

        assert otp.verify(OTPPurpose.REGISTRATION, EMAIL, code).outcome == OTPOutcome.EXPIRED
        assert db_session.query(OTPChallenge).count() == 0

    def test_valid_right_up_to_expiry(self, otp, clock):
        code = otp.issue(OTPPurpose.REGISTRATION, EMAIL)
        clock.advance(minutes=5)

        assert otp.verify(OTPPurpose.REGISTRATION, EMAIL, code).matched

    def test_attempts_survive_commit(self, db_session, otp):
        code = otp.issue(OTPPurpose.MFA_LOGIN, "42")
        db_session.commit()

        otp.verify(OTPPurpose.MFA_LOGIN, "42", wrong(code))
        db_session.commit()

        challenge = db_session.query(OTPChallenge).one()
        db_session.refresh(challenge)
        assert challenge.attempts == 1

    def test_unknown_key_is_missing(self, otp):
        assert otp.verify(OTPPurpose.MFA_LOGIN, "nobody", "123456").outcome == OTPOutcome.MISSING


class TestReissue:

    def test_reissue_keeps_payload_and_resets_counter(self, db_session, otp, clock):
        first = otp.issue(OTPPurpose.REGISTRATION, EMAIL, {"first_name": "Nia"})
        otp.verify(OTPPurpose.REGISTRATION, EMAIL, wrong(first))
        otp.verify(OTPPurpose.REGISTRATION, EMAIL, wrong(first))
        clock.advance(minutes=4)

        second = otp.reissue(OTPPurpose.REGISTRATION, EMAIL)

        challenge = db_session.query(OTPChallenge).one()
        assert challenge.attempts == 0
        assert challenge.expires_at == clock.now + timedelta(minutes=5)
        result = otp.verify(OTPPurpose.REGISTRATION, EMAIL, second)
        assert result.payload == {"first_name": "Nia"}

    def test_reissue_without_challenge(self, otp):
        with pytest.raises(NotFoundError):
            otp.reissue(OTPPurpose.REGISTRATION, EMAIL)


class TestDelivery:

    def test_issue_and_send_mails_the_code(self, otp):
        code = otp.issue_and_send(OTPPurpose.REGISTRATION, EMAIL, EMAIL, "Nia")

        assert otp.mailer.last_code(EMAIL) == code
        assert "5 minutes" in otp.mailer.outbox[-1].text_body

    def test_failed_send_leaves_no_challenge(self, db_session, otp):
        otp.mailer.fail = True

        with pytest.raises(DependencyError):
            otp.issue_and_send(OTPPurpose.REGISTRATION, EMAIL, EMAIL, "Nia")
        assert db_session.query(OTPChallenge).count() == 0

    def test_failed_resend_is_an_error(self, db_session, otp):
        otp.issue(OTPPurpose.REGISTRATION, EMAIL, {"first_name": "Nia"})
        otp.mailer.fail = True

        with pytest.raises(DependencyError):
            otp.reissue_and_send(OTPPurpose.REGISTRATION, EMAIL, EMAIL, "Nia")


class TestConcurrentGuesses:
    """Each manager runs on its own session, as separate requests would."""

    @pytest.fixture
    def sessions(self):
        opened = []

        def open_manager(clock):
            session = TestSessionLocal()
            opened.append(session)
            return session, OTPChallengeManager(session, FakeMailer(), clock=clock)

        yield open_manager
        for session in opened:
            session.rollback()
            session.close()

    def test_wrong_guesses_from_many_sessions_end_the_challenge(
        self, db_session, otp, clock, sessions
    ):
        code = otp.issue(OTPPurpose.MFA_LOGIN, "42")
        db_session.commit()
        managers = [sessions(clock) for _ in range(5)]

        outcomes = []
        for session, manager in managers:
            outcomes.append(manager.verify(OTPPurpose.MFA_LOGIN, "42", wrong(code)).outcome)
            session.commit()

        assert outcomes == [OTPOutcome.MISMATCH] * 3 + [OTPOutcome.EXHAUSTED, OTPOutcome.MISSING]
        session, manager = sessions(clock)
        assert manager.verify(OTPPurpose.MFA_LOGIN, "42", code).outcome == OTPOutcome.MISSING

    def test_stale_reads_cannot_exceed_the_limit(self, db_session, otp, clock, sessions):
        code = otp.issue(OTPPurpose.MFA_LOGIN, "42")
        db_session.commit()
        managers = [sessions(clock) for _ in range(5)]

        # Every session reads the fresh challenge before anyone guesses
        for _, manager in managers:
            snapshot = manager._load(OTPPurpose.MFA_LOGIN, "42")
            assert snapshot.attempts == 0
            serve_once(manager, snapshot)

        outcomes = []
        for session, manager in managers:
            outcomes.append(manager.verify(OTPPurpose.MFA_LOGIN, "42", wrong(code)).outcome)
            session.commit()

        assert outcomes == [OTPOutcome.MISMATCH] * 3 + [OTPOutcome.EXHAUSTED] * 2
        db_session.expire_all()
        assert db_session.query(OTPChallenge).count() == 0
        session, manager = sessions(clock)
        assert manager.verify(OTPPurpose.MFA_LOGIN, "42", code).outcome == OTPOutcome.MISSING

    def test_match_loses_to_guess_that_used_the_last_attempt(
        self, db_session, otp, clock, sessions
    ):
        code = otp.issue(OTPPurpose.MFA_LOGIN, "42")
        for _ in range(2):
            otp.verify(OTPPurpose.MFA_LOGIN, "42", wrong(code))
        db_session.commit()

        session_a, manager_a = sessions(clock)
        session_b, manager_b = sessions(clock)
        original_load = manager_a._load
        guesses = []

        def load_then_race(purpose, identity_key):
            challenge = original_load(purpose, identity_key)
            if not guesses:
                # B's wrong guess lands between A's read and A's consume
                guesses.append(manager_b.verify(purpose, identity_key, wrong(code)).outcome)
                session_b.commit()
            return challenge

        manager_a._load = load_then_race

        result = manager_a.verify(OTPPurpose.MFA_LOGIN, "42", code)
        session_a.commit()

        assert guesses == [OTPOutcome.MISMATCH]
        assert result.outcome == OTPOutcome.EXHAUSTED
        assert result.payload is None
        db_session.expire_all()
        assert db_session.query(OTPChallenge).count() == 0


def serve_once(manager, challenge):
    """Make the next lookup return an already loaded challenge."""
    original_load = manager._load
    served = []

    def load(purpose, identity_key):
        if not served:
            served.append(challenge)
            return challenge
        return original_load(purpose, identity_key)

    manager._load = load
