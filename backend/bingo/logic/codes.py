"""Join codes: short, uppercase, and free of look-alike glyphs."""

import secrets

JOIN_CODE_LENGTH = 6
# No 0/O, 1/I or L.
JOIN_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


def generate_join_code() -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def normalize_join_code(code: str) -> str:
    return code.strip().upper()


def is_valid_join_code(code: str) -> bool:
    return len(code) == JOIN_CODE_LENGTH and all(c in JOIN_CODE_ALPHABET for c in code)


def lobby_path(code: str) -> str:
    return f"/lobby/{code}"


def play_path(code: str) -> str:
    return f"/play/{code}"
