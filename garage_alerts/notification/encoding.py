"""
Form-field percent encoding used by the push provider.

The provider expects the historical firmware encoding, which differs from
``urllib.parse.quote_plus``: only ASCII letters and digits pass through,
space becomes ``+`` and every other byte (including ``-``, ``_``, ``.`` and
``~``) becomes ``%XX`` with uppercase hex digits.
"""

from __future__ import annotations

from urllib.parse import unquote_plus

_SAFE = frozenset(b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789")


def percent_encode(text: str) -> str:
    """
    Percent-encode ``text`` (UTF-8) for a form body.

    Examples
    --------
    >>> percent_encode("Fire & smoke")
    'Fire+%26+smoke'
    """
    out = []
    for byte in text.encode("utf-8"):
        if byte in _SAFE:
            out.append(chr(byte))
        elif byte == 0x20:
            out.append("+")
        else:
            out.append(f"%{byte:02X}")
    return "".join(out)


def percent_decode(text: str) -> str:
    """Inverse of `percent_encode`."""
    return unquote_plus(text, encoding="utf-8", errors="strict")
