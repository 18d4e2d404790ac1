# facevote/seed_admin.py
# Create the admin account (and a default election window) if they do not exist yet.
import os
import logging
from datetime import timedelta

from . import crud
from .clock import Clock, SystemClock
from .ledger import VoteLedger
from .models import Role, VerificationStatus, Voter
from .security import hash_password
from .storage import create_storage, run_in_transaction

logger = logging.getLogger(__name__)

DEFAULT_ELECTION_DAYS = 7


def seed_admin(store, name: str, email: str, password: str, clock: Clock = None,
               election_days: int = DEFAULT_ELECTION_DAYS) -> Voter:
    clock = clock or SystemClock()
    existing = run_in_transaction(store, lambda tx: tx.find_voter(email))
    if existing is not None:
        if existing.role != Role.ADMIN:
            raise ValueError(f"{email} already belongs to a non-admin account")
        # Accounts created before hashing was enforced carry a plain password
        if not existing.password_hash.startswith("$2"):
            existing = run_in_transaction(
                store,
                lambda tx: tx.update_voter(existing.id, password_hash=hash_password(existing.password_hash)),
            )
            logger.info(f"Hashed password for admin {email}")
        else:
            logger.info(f"Admin {email} already exists")
        admin = existing
    else:
        admin = crud.register(store, name=name, email=email, password=password, role=Role.ADMIN, clock=clock)
        admin = run_in_transaction(
            store, lambda tx: tx.update_voter(admin.id, verification_status=VerificationStatus.VERIFIED)
        )
        logger.info(f"Created admin {email}")

    ledger = VoteLedger(store, clock=clock)
    if run_in_transaction(store, lambda tx: tx.get_election()) is None:
        now = clock.now()
        ledger.configure_election(now, now + timedelta(days=election_days))
        logger.info(f"Opened default election window of {election_days} days")
    return admin


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    email = os.getenv("ADMIN_EMAIL", "admin@example.com")
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        raise SystemExit("ADMIN_PASSWORD must be set")
    store = create_storage()
    store.ensure_indexes()
    try:
        admin = seed_admin(store, os.getenv("ADMIN_NAME", "Administrator"), email, password)
    finally:
        store.close()
    print(f"Admin ready: {admin.email} ({admin.id})")


if __name__ == "__main__":
    main()
