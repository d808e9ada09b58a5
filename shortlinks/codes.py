import os
import re
import secrets
import string

ALPHABET = string.ascii_letters + string.digits + "-"
MIN_LENGTH = 3
MAX_LENGTH = 50


def _code_length(raw) -> int:
    length = int(raw)
    if not MIN_LENGTH <= length <= MAX_LENGTH:
        raise RuntimeError(f"SHORT_CODE_LENGTH must be between {MIN_LENGTH} and {MAX_LENGTH}")
    return length


DEFAULT_LENGTH = _code_length(os.getenv("SHORT_CODE_LENGTH", 7))

CODE_RE = re.compile(r"[A-Za-z0-9-]{%d,%d}" % (MIN_LENGTH, MAX_LENGTH))

# Path segments owned by the API itself; never issued as short codes.
RESERVED_CODES = {"docs", "openapi.json", "redoc", "login", "create", "update",
                  "delete", "status", "links", "report", "health", "r",
                  "favicon.ico"}


def generate_code(length: int = DEFAULT_LENGTH) -> str:
    """Random candidate code; uniqueness is the store's job, not ours."""
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def is_valid_code(code: str | None) -> bool:
    if not code:
        return False
    return CODE_RE.fullmatch(code) is not None


def is_reserved(code: str) -> bool:
    return code.lower() in RESERVED_CODES
