"""Input checks at the edge of the flow: email syntax, typo hints, redirect targets."""

import difflib
from urllib.parse import urlparse

MAX_LOCAL_PART_BYTES = 64
MAX_DOMAIN_BYTES = 255

# Mail providers common enough that a near miss is almost surely a typo.
COMMON_EMAIL_DOMAINS = (
    "gmail.com",
    "yahoo.com",
    "yahoo.fr",
    "hotmail.com",
    "hotmail.fr",
    "outlook.com",
    "outlook.fr",
    "live.com",
    "icloud.com",
    "me.com",
    "aol.com",
    "protonmail.com",
    "proton.me",
    "orange.fr",
    "wanadoo.fr",
    "free.fr",
    "laposte.net",
    "sfr.fr",
    "gmx.com",
    "gmx.de",
    "web.de",
)


class EmailValidator:
    """RFC-lenient email checks.

    Accepts Unicode in both parts and quoted local parts. Rejects values
    without an `@`, with an empty side, a local part over 64 bytes, or a
    domain over 255 bytes (UTF-8).
    """

    def __init__(self, known_domains: tuple[str, ...] = COMMON_EMAIL_DOMAINS, cutoff: float = 0.85):
        self._known_domains = known_domains
        self._cutoff = cutoff

    @staticmethod
    def normalize(email: str) -> str:
        return (email or "").strip().lower()

    def is_valid(self, email: str | None) -> bool:
        if not email or "@" not in email:
            return False
        local, _, domain = email.rpartition("@")
        if not local or not domain:
            return False
        if len(local.encode("utf-8")) > MAX_LOCAL_PART_BYTES:
            return False
        if len(domain.encode("utf-8")) > MAX_DOMAIN_BYTES:
            return False
        if any(char.isspace() for char in domain):
            return False
        if domain.startswith(".") or domain.endswith(".") or ".." in domain:
            return False
        # Whitespace in the local part is only legal inside quotes.
        if any(char.isspace() for char in local) and not (local.startswith('"') and local.endswith('"')):
            return False
        return True

    def suggest(self, email: str | None) -> str | None:
        """Corrected address when the domain is a near miss of a common one."""
        if not email or "@" not in email:
            return None
        local, _, domain = email.rpartition("@")
        domain = domain.lower()
        if not local or not domain or domain in self._known_domains:
            return None
        matches = difflib.get_close_matches(domain, self._known_domains, n=1, cutoff=self._cutoff)
        if not matches:
            return None
        return f"{local}@{matches[0]}"


def is_url_trusted(url: str | None, trusted_hosts: set[str]) -> bool:
    """True for same-site relative paths and http(s) URLs on a trusted host."""
    if not url:
        return False
    parsed = urlparse(url)
    if not parsed.scheme and not parsed.netloc:
        # "//evil.example" parses with a netloc; a bare path is same-site.
        return url.startswith("/") and not url.startswith("//") and "\\" not in url
    if parsed.scheme not in ("http", "https"):
        return False
    return (parsed.hostname or "").lower() in trusted_hosts
