from pwdlib import PasswordHash


MIN_PASSWORD_LENGTH = 8

password_hash = PasswordHash.recommended()


def check_password_policy(raw_password: str) -> None:
    if len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if raw_password != raw_password.strip():
        raise ValueError("Password must not start or end with a space")


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str | None) -> bool:
    return verify_and_rehash(raw_password, hashed_password)[0]


def verify_and_rehash(raw_password: str, hashed_password: str | None) -> tuple[bool, str | None]:
    """Check a password against its stored hash.

    The second item is a replacement hash when the stored one was made with
    weaker parameters than the current recommendation, otherwise None.
    Employees without a password set can never sign in.
    """
    if not hashed_password:
        return False, None
    return password_hash.verify_and_update(raw_password, hashed_password)
