# facevote/lockout.py
"""
Brute-force guard for logins, keyed by account only.

    open   --failure-->  open     login_attempts += 1
    open   --5th failure--> locked   lock_until = now + 15 min
    locked --any attempt--> locked   rejected (423) without checking anything
    *      --success-->  open     login_attempts = 0, lock_until cleared

A failure after an expired lock starts counting again from 1.
"""
import math
import logging
from datetime import datetime, timedelta
from typing import Callable

from . import config
from .clock import Clock, SystemClock
from .errors import AccountLocked, FaceMismatch, InvalidCredentials
from .models import Voter
from .storage import Transaction, run_in_transaction

logger = logging.getLogger(__name__)

# Failures that count towards the lock; other errors (428, corrupt data) do not
COUNTED_FAILURES = (InvalidCredentials, FaceMismatch)


class LockoutGuard:
    def __init__(self, clock: Clock = None,
                 max_attempts: int = config.MAX_LOGIN_ATTEMPTS,
                 lock_minutes: int = config.LOCK_DURATION_MINUTES):
        self.clock = clock or SystemClock()
        self.max_attempts = max_attempts
        self.lock_duration = timedelta(minutes=lock_minutes)

    def minutes_remaining(self, voter: Voter, now: datetime) -> int:
        seconds = (voter.lock_until - now).total_seconds()
        return max(1, math.ceil(seconds / 60))

    def remaining_attempts(self, voter: Voter) -> int:
        return max(0, self.max_attempts - voter.login_attempts)

    def ensure_unlocked(self, voter: Voter, now: datetime) -> None:
        if voter.is_locked(now):
            raise AccountLocked(minutes_remaining=self.minutes_remaining(voter, now))

    def record_failure(self, tx: Transaction, voter: Voter, now: datetime) -> Voter:
        if voter.lock_until is not None and voter.lock_until <= now:
            attempts = 1
        else:
            attempts = voter.login_attempts + 1
        lock_until = now + self.lock_duration if attempts >= self.max_attempts else None
        if lock_until:
            logger.warning(f"Account {voter.id} locked until {lock_until.isoformat()}")
        return tx.update_voter(voter.id, login_attempts=attempts, lock_until=lock_until)

    def record_success(self, tx: Transaction, voter: Voter) -> Voter:
        if voter.login_attempts == 0 and voter.lock_until is None:
            return voter
        return tx.update_voter(voter.id, login_attempts=0, lock_until=None)

    def authenticate(self, store, identifier: str, check: Callable[[Voter], None]) -> Voter:
        """
        Gate ``check(voter)`` behind the lock. ``check`` raises
        InvalidCredentials / FaceMismatch to count a failure; any other error
        aborts the attempt without touching the counters.

        ``check`` (password hashing, descriptor matching) runs outside any
        transaction; only the counter bookkeeping on the one voter record is
        done atomically, against a fresh read.
        """
        now = self.clock.now()

        found = run_in_transaction(store, lambda tx: tx.find_voter(identifier))
        if found is None:
            raise InvalidCredentials()
        self.ensure_unlocked(found, now)

        failure = None
        try:
            check(found)
        except COUNTED_FAILURES as exc:
            failure = exc

        def record(tx: Transaction) -> Voter:
            current = tx.get_voter(found.id)
            if current is None:
                raise InvalidCredentials()
            # a concurrent attempt may have locked the account meanwhile
            self.ensure_unlocked(current, now)
            if failure is not None:
                return self.record_failure(tx, current, now)
            return self.record_success(tx, current)

        voter = run_in_transaction(store, record)
        if failure is None:
            return voter

        logger.info(f"Failed login for {voter.id} ({type(failure).__name__}), attempts={voter.login_attempts}")
        if voter.is_locked(now):
            raise AccountLocked(minutes_remaining=self.minutes_remaining(voter, now))
        failure.extra["remaining_attempts"] = self.remaining_attempts(voter)
        raise failure
