"""Money helpers: integer cents, display conversion and id-ID formatting."""

from decimal import Decimal

import pytest

from stockbook.money import format_money, format_number, from_display, parse_display, to_display
from stockbook.services.errors import InvalidAmountError


class TestDisplayConversion:

    def test_to_display_is_exact_decimal(self):
        assert to_display(1000050) == Decimal("10000.50")
        assert to_display(1) == Decimal("0.01")

    @pytest.mark.parametrize("cents", [0, 100, 1500000, 99_999_900])
    def test_round_trip_whole_units(self, cents):
        assert from_display(to_display(cents)) == cents

    def test_from_display_accepts_str_int_and_float(self):
        assert from_display("10.50") == 1050
        assert from_display(10) == 1000
        assert from_display(1.1) == 110

    def test_rounds_half_away_from_zero(self):
        assert from_display("10.005") == 1001
        assert from_display("10.004") == 1000
        assert from_display("-0.005") == -1

    @pytest.mark.parametrize("value", ["abc", "", None, True, "NaN", "Infinity"])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(InvalidAmountError):
            from_display(value)


class TestParseDisplay:

    @pytest.mark.parametrize(
        "text,cents",
        [
            ("Rp10.000", 1000000),
            ("Rp 10.000", 1000000),
            ("10.000,50", 1000050),
            ("1.250.000", 125000000),
            ("15", 1500),
            ("0,5", 50),
        ],
    )
    def test_parses_id_id_strings(self, text, cents):
        assert parse_display(text) == cents

    @pytest.mark.parametrize("text", ["", "Rp", "  ", None, "Rp ."])
    def test_empty_input_is_invalid(self, text):
        with pytest.raises(InvalidAmountError):
            parse_display(text)

    @pytest.mark.parametrize("text", ["1e3", "12abc34", "Rp 1x0.000", "10,5,3", "Rp--5", "USD10", "10Rp"])
    def test_garbage_is_rejected_not_stripped(self, text):
        with pytest.raises(InvalidAmountError):
            parse_display(text)

    def test_sign_and_symbol(self):
        assert parse_display("-Rp10.000") == -1000000
        assert parse_display("Rp -10.000") == -1000000
        assert parse_display("rp 5") == 500
        assert parse_display("$12,50", symbol="$") == 1250

    def test_other_symbol_is_not_stripped(self):
        with pytest.raises(InvalidAmountError):
            parse_display("Rp10", symbol="$")


class TestFormatting:

    def test_format_number_groups_thousands_with_dots(self):
        assert format_number(1000000) == "10.000"
        assert format_number(123456789) == "1.234.568"
        assert format_number(0) == "0"

    def test_format_money(self):
        assert format_money(1000000) == "Rp10.000"
        assert format_money(-1000000) == "-Rp10.000"
        assert format_money(500, symbol="$") == "$5"

    def test_formatted_value_parses_back(self):
        assert parse_display(format_money(25000000)) == 25000000
