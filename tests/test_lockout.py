from contextlib import contextmanager
from datetime import timedelta

import pytest

from facevote import config, crud
from facevote.errors import (
    AccountLocked,
    CorruptBiometricData,
    FaceMismatch,
    FaceVerificationRequired,
    InvalidCredentials,
    NoEnrolledDescriptor,
)
from facevote.lockout import LockoutGuard
from facevote.models import Biometrics
from facevote.security import hash_password
from facevote.storage import run_in_transaction
from tests.conftest import PASSWORD, add_voter, at_distance, base_descriptor


@pytest.fixture
def guard(clock):
    return LockoutGuard(clock=clock)


@pytest.fixture
def alice(store):
    return add_voter(store, password_hash=hash_password(PASSWORD), student_id="S100")


def reload(store, voter):
    return run_in_transaction(store, lambda tx: tx.get_voter(voter.id))


class TestLockout:
    """Five counted failures lock the account for fifteen minutes."""

    def test_remaining_attempts_count_down(self, store, guard, alice):
        remaining = []
        for _ in range(4):
            with pytest.raises(InvalidCredentials) as err:
                crud.login(store, guard, alice.email, "wrong")
            remaining.append(err.value.extra["remaining_attempts"])
        assert remaining == [4, 3, 2, 1]
        assert reload(store, alice).login_attempts == 4

    def test_fifth_failure_locks(self, store, guard, alice, clock):
        for _ in range(4):
            with pytest.raises(InvalidCredentials):
                crud.login(store, guard, alice.email, "wrong")
        with pytest.raises(AccountLocked) as err:
            crud.login(store, guard, alice.email, "wrong")
        assert err.value.status_code == 423
        assert err.value.extra["minutes_remaining"] == 15
        locked = reload(store, alice)
        assert locked.login_attempts == 5
        assert locked.lock_until == clock.now() + timedelta(minutes=15)

        # Correct password is refused while locked
        clock.advance(minutes=14, seconds=30)
        with pytest.raises(AccountLocked) as err:
            crud.login(store, guard, alice.email, PASSWORD)
        assert err.value.extra["minutes_remaining"] == 1

    def test_lock_expires(self, store, guard, alice, clock):
        for _ in range(5):
            with pytest.raises((InvalidCredentials, AccountLocked)):
                crud.login(store, guard, alice.email, "wrong")
        clock.advance(minutes=15)

        voter = crud.login(store, guard, alice.email, PASSWORD)

        assert voter.login_attempts == 0
        assert voter.lock_until is None

    def test_failure_after_expired_lock_restarts_count(self, store, guard, alice, clock):
        for _ in range(5):
            with pytest.raises((InvalidCredentials, AccountLocked)):
                crud.login(store, guard, alice.email, "wrong")
        clock.advance(minutes=16)

        with pytest.raises(InvalidCredentials) as err:
            crud.login(store, guard, alice.email, "wrong")

        assert err.value.extra["remaining_attempts"] == 4
        voter = reload(store, alice)
        assert voter.login_attempts == 1
        assert voter.lock_until is None

    def test_success_resets_counter(self, store, guard, alice):
        for _ in range(3):
            with pytest.raises(InvalidCredentials):
                crud.login(store, guard, alice.email, "wrong")
        crud.login(store, guard, "S100", PASSWORD)
        assert reload(store, alice).login_attempts == 0

    def test_unknown_account(self, store, guard):
        with pytest.raises(InvalidCredentials) as err:
            crud.login(store, guard, "nobody@example.com", PASSWORD)
        assert "remaining_attempts" not in err.value.extra


class TestFaceLogin:
    """Password first, then the live descriptor against the enrolled one."""

    @pytest.fixture
    def enrolled(self, store):
        return add_voter(store, email="face@example.com", password_hash=hash_password(PASSWORD),
                         descriptor=base_descriptor())

    def test_close_face_logs_in(self, store, guard, enrolled):
        voter = crud.login(store, guard, enrolled.email, PASSWORD, at_distance(base_descriptor(), 0.5))
        assert voter.id == enrolled.id

    def test_mismatch_counts(self, store, guard, enrolled):
        with pytest.raises(FaceMismatch) as err:
            crud.login(store, guard, enrolled.email, PASSWORD, at_distance(base_descriptor(), 0.7))
        assert err.value.extra["remaining_attempts"] == 4
        assert err.value.extra["distance"] == pytest.approx(0.7, abs=1e-3)
        assert reload(store, enrolled).login_attempts == 1

    def test_missing_live_descriptor_does_not_count(self, store, guard, enrolled):
        for _ in range(6):
            with pytest.raises(FaceVerificationRequired) as err:
                crud.login(store, guard, enrolled.email, PASSWORD)
        assert err.value.status_code == 428
        assert reload(store, enrolled).login_attempts == 0

    def test_wrong_password_checked_before_face(self, store, guard, enrolled):
        with pytest.raises(InvalidCredentials):
            crud.login(store, guard, enrolled.email, "wrong")

    def test_corrupt_enrolled_descriptor(self, store, guard, enrolled):
        run_in_transaction(store, lambda tx: tx.update_voter(
            enrolled.id, biometrics=Biometrics(descriptor_enc="garbage", dim=128)))
        with pytest.raises(CorruptBiometricData):
            crud.login(store, guard, enrolled.email, PASSWORD, base_descriptor())
        assert reload(store, enrolled).login_attempts == 0

    def test_no_enrolled_face_bypass(self, store, guard, alice):
        assert crud.login(store, guard, alice.email, PASSWORD).id == alice.id

    def test_no_enrolled_face_rejected_when_policy_off(self, store, guard, alice, mocker):
        mocker.patch.object(config, "ALLOW_LOGIN_WITHOUT_ENROLLED_FACE", False)
        with pytest.raises(NoEnrolledDescriptor):
            crud.login(store, guard, alice.email, PASSWORD)


class CountingStore:
    """Wraps a store and tracks how many transactions are open."""

    def __init__(self, store):
        self.store = store
        self.open = 0

    @contextmanager
    def transaction(self):
        self.open += 1
        try:
            with self.store.transaction() as tx:
                yield tx
        finally:
            self.open -= 1


class TestCheckOutsideTransaction:
    """Password hashing and matching never hold the store."""

    def test_failed_check(self, store, guard, alice):
        counting = CountingStore(store)
        seen = []

        def check(voter):
            seen.append(counting.open)
            raise InvalidCredentials()

        with pytest.raises(InvalidCredentials):
            guard.authenticate(counting, alice.email, check)

        assert seen == [0]
        assert reload(store, alice).login_attempts == 1

    def test_successful_check(self, store, guard, alice):
        counting = CountingStore(store)
        seen = []

        voter = guard.authenticate(counting, alice.email, lambda v: seen.append(counting.open))

        assert seen == [0]
        assert voter.id == alice.id

    def test_lock_taken_while_checking(self, store, guard, alice, clock):
        """A lock imposed by a concurrent attempt wins over a correct password."""
        def check(voter):
            run_in_transaction(store, lambda tx: tx.update_voter(
                voter.id, login_attempts=5, lock_until=clock.now() + timedelta(minutes=15)))

        with pytest.raises(AccountLocked):
            guard.authenticate(store, alice.email, check)
        assert reload(store, alice).login_attempts == 5
