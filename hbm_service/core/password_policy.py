"""
Password policy and hashing for staff accounts
"""
from typing import List, Tuple

from passlib.context import CryptContext

from hbm_service.core.config import settings

pwd_context = CryptContext(schemes=[settings.PASSWORD_HASH_SCHEME], deprecated="auto")


class PasswordPolicy:
    """
    Enforces password complexity requirements.

    - Minimum length (PASSWORD_MIN_LENGTH)
    - At least one uppercase letter, one lowercase letter and one digit
    - Not a well-known weak password
    """

    MAX_LENGTH = 128

    COMMON_PASSWORDS = {
        "password", "123456", "12345678", "qwerty", "abc123",
        "letmein", "trustno1", "password1", "password123", "passw0rd",
        "welcome1", "admin123", "qwerty123",
    }

    @classmethod
    def validate(cls, password: str) -> Tuple[bool, List[str]]:
        """
        Validate password against policy.

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors = []
        min_length = settings.PASSWORD_MIN_LENGTH

        if not password:
            return (False, ["Password is required"])

        if len(password) < min_length:
            errors.append(f"Password must be at least {min_length} characters long")

        if len(password) > cls.MAX_LENGTH:
            errors.append(f"Password must be at most {cls.MAX_LENGTH} characters")

        if not (
            any(c.isupper() for c in password)
            and any(c.islower() for c in password)
            and any(c.isdigit() for c in password)
        ):
            errors.append(
                "Password must contain at least one uppercase letter, "
                "one lowercase letter, and one number"
            )

        if password.lower() in cls.COMMON_PASSWORDS:
            errors.append("Password is too common, please choose a stronger password")

        return (len(errors) == 0, errors)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)
