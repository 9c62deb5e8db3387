"""String format predicates shared by expressions and built-in rules.

Each predicate is a pure function ``str -> bool`` (plus options).  The
string rule family (``email``, ``hostname``, ``ip``, ``uri`` ...) and
the expression functions (``isEmail()``, ``isHostname()`` ...) both
call into this module, so the two always agree.
"""
from __future__ import annotations

import ipaddress
import re
from typing import Final
from urllib.parse import urlsplit

_EMAIL: Final[re.Pattern[str]] = re.compile(
    r"[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*"
)
_LABEL: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?")
_UUID: Final[re.Pattern[str]] = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)
_TUUID: Final[re.Pattern[str]] = re.compile(r"[0-9a-fA-F]{32}")
_SCHEME: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")
# unreserved / sub-delims / ":" / "@" / "/" / "?" / "#" / "[" / "]" / "%"
_URI_CHARS: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9\-._~!$&'()*+,;=:@/?#\[\]%]*")
_PCT: Final[re.Pattern[str]] = re.compile(r"%(?![0-9A-Fa-f]{2})")
_PORT: Final[re.Pattern[str]] = re.compile(r"0|[1-9][0-9]{0,4}")


def is_hostname(value: str) -> bool:
    """RFC 1034 hostname: dot-separated labels, last label not all digits."""
    if not value or len(value) > 253:
        return False
    host = value[:-1] if value.endswith(".") else value
    labels = host.split(".")
    if not all(_LABEL.fullmatch(label) for label in labels):
        return False
    return not labels[-1].isdigit()


def is_email(value: str) -> bool:
    """Email address in the HTML5 "valid e-mail address" form."""
    if not _EMAIL.fullmatch(value) or len(value) > 254:
        return False
    local, _, domain = value.rpartition("@")
    return len(local) <= 64 and all(len(label) <= 63 for label in domain.split("."))


def is_ip(value: str, version: int = 0) -> bool:
    """IPv4 or IPv6 address; ``version`` 4 or 6 restricts the family."""
    if version not in (0, 4, 6) or not value:
        return False
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    return version == 0 or address.version == version


def is_ip_prefix(value: str, version: int = 0, strict: bool = False) -> bool:
    """Address with a prefix length, e.g. ``10.0.0.0/8``.

    With ``strict`` the host bits must be zero (a network address).
    """
    if version not in (0, 4, 6) or "/" not in value:
        return False
    address, _, length = value.partition("/")
    if not length.isdigit() or (len(length) > 1 and length.startswith("0")):
        return False
    if not is_ip(address, version):
        return False
    try:
        ipaddress.ip_network(value, strict=strict)
    except ValueError:
        return False
    return True


def is_uri(value: str) -> bool:
    """Absolute URI per RFC 3986: a scheme followed by a hierarchical part."""
    if not _SCHEME.match(value):
        return False
    return _well_formed_reference(value)


def is_uri_ref(value: str) -> bool:
    """URI or relative reference per RFC 3986."""
    if _SCHEME.match(value):
        return _well_formed_reference(value)
    path = re.split(r"[/?#]", value, maxsplit=1)[0]
    if ":" in path:
        return False
    return _well_formed_reference(value)


def _well_formed_reference(value: str) -> bool:
    if not _URI_CHARS.fullmatch(value) or _PCT.search(value):
        return False
    try:
        parts = urlsplit(value)
        parts.port  # noqa: B018 - raises ValueError on a malformed port
    except ValueError:
        return False
    netloc = parts.netloc.rpartition("@")[2]
    remainder = value
    if netloc.startswith("["):
        end = netloc.find("]")
        if end < 0 or not is_ip(netloc[1:end].split("%25")[0], 6):
            return False
        remainder = value.replace(netloc[: end + 1], "", 1)
    # Brackets are only legal around an IPv6 host literal.
    return "[" not in remainder and "]" not in remainder


def is_uuid(value: str) -> bool:
    """RFC 4122 UUID in the dashed 8-4-4-4-12 form."""
    return bool(_UUID.fullmatch(value))


def is_tuuid(value: str) -> bool:
    """Trimmed UUID: 32 hex digits without dashes."""
    return bool(_TUUID.fullmatch(value))


def is_port(value: str) -> bool:
    return bool(_PORT.fullmatch(value)) and int(value) <= 65535


def is_host_and_port(value: str, port_required: bool = True) -> bool:
    """``host:port`` where host is a hostname, IPv4, or bracketed IPv6."""
    if not value:
        return False
    if value.startswith("["):
        end = value.find("]")
        if end < 0:
            return False
        host, rest = value[1:end], value[end + 1 :]
        if not is_ip(host.split("%")[0], 6):
            return False
        if not rest:
            return not port_required
        return rest.startswith(":") and is_port(rest[1:])
    host, sep, port = value.rpartition(":")
    if not sep:
        return not port_required and (is_hostname(value) or is_ip(value, 4))
    return (is_hostname(host) or is_ip(host, 4)) and is_port(port)


def is_address(value: str) -> bool:
    """A hostname or an IP address."""
    return is_hostname(value) or is_ip(value)
