import datetime
import re
import secrets
import unicodedata


def now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None).isoformat() + "Z"


def now_millis() -> int:
    return int(datetime.datetime.now(datetime.timezone.utc).timestamp() * 1000)


def generate_id() -> str:
    return secrets.token_hex(16)


def sanitize_username(u: str) -> str:
    u = u.strip()
    u = "".join(ch for ch in u if ch.isalnum() or ch in "-_." or ch == " ")
    return u


def slugify(name: str) -> str:
    name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
    name = re.sub(r"[^A-Za-z0-9]+", "-", name.lower()).strip("-")
    return name or "room"
