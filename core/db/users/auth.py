"""
Password hashing, verification and strength rules.
"""
from __future__ import annotations

import bcrypt
from password_strength import PasswordPolicy, PasswordStats
from password_strength.tests import Length, Numbers

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 64

password_policy = PasswordPolicy.from_names(length=MIN_PASSWORD_LENGTH, numbers=1)

_POLICY_MESSAGES = {
    Length: f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
    Numbers: "Password must contain a digit.",
}


def hash_password(raw_password: str) -> str:
    return bcrypt.hashpw(raw_password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(raw_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(raw_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed or legacy hash.
        return False


def password_problems(raw_password: str) -> list[str]:
    """Return human-readable reasons the password is too weak (empty list if fine)."""
    pwd = raw_password or ""
    problems = [_POLICY_MESSAGES[type(test)] for test in password_policy.test(pwd)]
    if len(pwd) > MAX_PASSWORD_LENGTH:
        problems.append(f"Password must be at most {MAX_PASSWORD_LENGTH} characters.")
    if PasswordStats(pwd).letters < 1:
        problems.append("Password must contain a letter.")
    return problems


__all__ = ["hash_password", "verify_password", "password_problems", "password_policy", "MIN_PASSWORD_LENGTH"]
