"""
Tests for phone normalization and money helpers.
"""

from decimal import Decimal

from whatsapp_vendas.utils import format_money, normalize_phone, parse_money, phone_digits


class TestNormalizePhone:
    """Canonical form: digits, country code once, routing domain once."""

    def test_formatted_local_number(self):
        assert normalize_phone("(11) 99999-8888") == "5511999998888@s.whatsapp.net"

    def test_international_format(self):
        assert normalize_phone("+55 11 99999-8888") == "5511999998888@s.whatsapp.net"

    def test_canonical_is_unchanged(self):
        canonical = "5511999998888@s.whatsapp.net"
        assert normalize_phone(canonical) == canonical

    def test_idempotent(self):
        once = normalize_phone("11 99999 8888")
        assert normalize_phone(once) == once

    def test_prefix_and_suffix_appear_once(self):
        for raw in ["11999998888", "(21) 3333-4444", "999", "11999998888@s.whatsapp.net"]:
            result = normalize_phone(raw)
            assert result.count("@s.whatsapp.net") == 1
            assert result.endswith("@s.whatsapp.net")
            assert result.startswith("55")
            assert not result.startswith("5555")

    def test_empty_input_still_valid(self):
        assert normalize_phone("") == "55@s.whatsapp.net"

    def test_custom_country_and_domain(self):
        assert normalize_phone("4155550100", country_code="1", domain="@c.us") == "14155550100@c.us"

    def test_group_id_keeps_group_domain(self):
        assert normalize_phone("120363025246125486@g.us") == "120363025246125486@g.us"

    def test_phone_digits(self):
        assert phone_digits("5511999998888@s.whatsapp.net") == "5511999998888"


class TestMoney:
    def test_format_two_decimals(self):
        assert format_money(Decimal("12.5")) == "12.50"
        assert format_money(3) == "3.00"
        assert format_money(None) == "0.00"

    def test_parse_comma_decimal(self):
        assert parse_money("19,90") == Decimal("19.90")

    def test_parse_with_currency_and_thousands(self):
        assert parse_money("R$ 1.234,50") == Decimal("1234.50")

    def test_parse_dot_decimal(self):
        assert parse_money("7.5") == Decimal("7.50")

    def test_parse_invalid(self):
        assert parse_money("abc") is None
        assert parse_money("") is None
