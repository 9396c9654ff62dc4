"""
Utility functions for WhatsApp addressing and money formatting.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from whatsapp_vendas.config import settings

logger = logging.getLogger(__name__)

GROUP_DOMAIN = "@g.us"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(
    raw: str,
    country_code: Optional[str] = None,
    domain: Optional[str] = None,
) -> str:
    """
    Canonicalize a phone identifier into the gateway addressing format.

    Keeps digits only, prefixes the country code when it is missing and
    appends the routing domain. Never raises; malformed input yields a
    syntactically valid identifier.

    Args:
        raw: Phone as typed or as received (``+55 (11) 99999-8888``,
            ``5511999998888@s.whatsapp.net``)
        country_code: Overrides COUNTRY_CODE
        domain: Overrides WHATSAPP_DOMAIN

    Returns:
        Canonical identifier, e.g. ``5511999998888@s.whatsapp.net``
    """
    country_code = country_code if country_code is not None else settings.COUNTRY_CODE
    domain = domain if domain is not None else settings.WHATSAPP_DOMAIN

    value = (raw or "").strip()
    is_group = value.endswith(GROUP_DOMAIN)

    # Drop any routing suffix before stripping so its letters never leak
    local_part = value.split("@", 1)[0]
    digits = _NON_DIGITS.sub("", local_part)

    # Group ids are not phone numbers
    if is_group:
        return local_part + GROUP_DOMAIN

    if not digits.startswith(country_code):
        digits = country_code + digits

    return digits + domain


def phone_digits(phone: str) -> str:
    """Return the digits-only part of a (canonical) phone identifier."""
    return _NON_DIGITS.sub("", (phone or "").split("@", 1)[0])


def format_money(value) -> str:
    """Format a price or total with two decimals (``12.50``)."""
    return f"{Decimal(str(value or 0)):.2f}"


def parse_money(text: str) -> Optional[Decimal]:
    """
    Parse a price typed by a person (``12,50``, ``R$ 12.50``).

    Returns:
        Decimal rounded to cents, or None when the text is not a number
    """
    cleaned = (text or "").strip().upper().replace("R$", "").strip()
    if "," in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        logger.debug(f"Unparseable money value: {text!r}")
        return None
    if not value.is_finite():
        return None
    return value.quantize(Decimal("0.01"))
