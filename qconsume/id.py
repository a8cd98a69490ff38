import secrets
import string

B36_ALPHABET = string.ascii_lowercase + string.digits


def unique_id(length: int = 13) -> str:
    """Return a random identifier for one consumer run."""
    return "".join(secrets.choice(B36_ALPHABET) for _ in range(length))
