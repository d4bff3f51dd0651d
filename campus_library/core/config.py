import logging
import os
from dataclasses import dataclass


DATABASE_URL = os.getenv("ELIB_DB", "sqlite:///./elibrary.db")
LOG_LEVEL = os.getenv("ELIB_LOG", "INFO")
SECRET_KEY = os.getenv("ELIB_SECRET_KEY", "dev-secret-key-change-in-production")
SESSION_MAX_AGE = 7 * 24 * 60 * 60


@dataclass(frozen=True)
class BorrowingPolicy:
    """Loan rules applied by the borrowing workflow.

    loan_period_days: due date offset used when a borrowing is created
        without an explicit due date (default 14).
    fine_per_day: amount charged per started day past the due date
        (default 1.0).
    """
    loan_period_days: int = 14
    fine_per_day: float = 1.0


def load_policy() -> BorrowingPolicy:
    return BorrowingPolicy(
        loan_period_days=int(os.getenv("ELIB_LOAN_DAYS", "14")),
        fine_per_day=float(os.getenv("ELIB_FINE_PER_DAY", "1.0")),
    )


DEFAULT_POLICY = load_policy()


def get_policy() -> BorrowingPolicy:
    return DEFAULT_POLICY


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(level=level,
                        format="%(asctime)s %(levelname)s %(name)s - %(message)s")
