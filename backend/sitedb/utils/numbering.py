import random
import string
import time
from datetime import date
from typing import Optional


def _random_block(length: int = 6) -> str:
    """
    Return a random string of uppercase letters and digits.
    """
    alphabet = string.ascii_uppercase + string.digits
    return "".join(random.choices(alphabet, k=length))


def generate_business_number(prefix: str, on: Optional[date] = None) -> str:
    """
    Generate a human-facing reference like 'MR-20250114-7K2Q9A'.

    Used for material request and production numbers. Uniqueness is
    enforced by the column constraint; collisions are retried by callers.
    """
    day = (on or date.today()).strftime("%Y%m%d")
    return f"{prefix}-{day}-{_random_block(6)}"


def generate_shipment_number() -> str:
    """'SH' followed by the current epoch milliseconds."""
    return f"SH{int(time.time() * 1000)}"


def generate_temporary_password(length: int = 12) -> str:
    alphabet = string.ascii_letters + string.digits
    while True:
        candidate = "".join(random.SystemRandom().choice(alphabet) for _ in range(length))
        if any(ch.isdigit() for ch in candidate) and any(ch.isalpha() for ch in candidate):
            return candidate
