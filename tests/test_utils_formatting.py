"""
Tests para el formato de valores en utils.py
Montos, fechas, celdas de reporte y etiquetas de respaldo
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from utils import (
    format_money,
    format_currency,
    format_cell,
    format_iso_date,
    format_timestamp,
    format_datetime_local,
    format_receipt_number,
    client_display_name,
    medicine_label,
    NOT_REGISTERED,
    load_logo_bytes,
    logo_file_path,
)


class TestFormatMoney:
    """Tests para montos con dos decimales"""

    def test_integer_gets_two_decimals(self):
        assert format_money(25) == '25.00'

    def test_none_is_zero(self):
        assert format_money(None) == '0.00'

    def test_half_up_rounding_is_decimal_based(self):
        """2.675 en float es 2.67499...; el redondeo usa la representación decimal"""
        assert format_money(2.675) == '2.68'
        assert format_money('0.125') == '0.13'

    def test_no_thousands_separator(self):
        assert format_money(1234567.5) == '1234567.50'

    def test_negative_amount(self):
        assert format_money(Decimal('-3.456')) == '-3.46'

    @pytest.mark.parametrize('value', [0, 0.1, 1.005, 19.999, 250.5, '7.20', Decimal('1000.01')])
    def test_idempotent_over_its_own_output(self, value):
        once = format_money(value)
        assert format_money(float(once)) == once
        assert format_money(once) == once


class TestFormatCurrency:

    def test_label_prefix(self):
        assert format_currency(10) == 'Bs. 10.00'

    def test_negative_prints_as_is(self):
        assert format_currency(-5) == 'Bs. -5.00'


class TestFormatCell:
    """Tests para la forma visible de una celda"""

    def test_none_is_empty(self):
        assert format_cell(None) == ''

    def test_int_without_decimals(self):
        assert format_cell(42) == '42'

    def test_float_as_money(self):
        assert format_cell(3.5) == '3.50'

    def test_bool(self):
        assert format_cell(True) == 'Sí'
        assert format_cell(False) == 'No'

    def test_dates(self):
        assert format_cell(date(2024, 1, 2)) == '2024-01-02'
        assert format_cell(datetime(2024, 1, 2, 8, 5, 9)) == '2024-01-02 08:05:09'

    def test_strings_pass_through(self):
        assert format_cell('a, "b"') == 'a, "b"'


class TestDates:

    def test_iso_date_truncates_timestamp(self):
        assert format_iso_date(datetime(2024, 1, 1, 23, 59, 59)) == '2024-01-01'
        assert format_iso_date('2024-01-01T10:00:00Z') == '2024-01-01'
        assert format_iso_date(None) == ''

    def test_timestamp(self):
        assert format_timestamp(datetime(2024, 3, 2, 16, 0)) == '2024-03-02 16:00:00'
        assert format_timestamp('2024-03-02T16:00:00') == '2024-03-02T16:00:00'

    def test_local_datetime_for_receipts(self):
        assert format_datetime_local(datetime(2024, 3, 2, 9, 5, 1)) == '02/03/2024 09:05:01'
        assert format_datetime_local('2024-03-02T09:05:01Z') == '02/03/2024 09:05:01'
        assert format_datetime_local(None) == ''


class TestLabels:
    """Tests para etiquetas de respaldo de referencias ausentes"""

    def test_receipt_number_padding(self):
        assert format_receipt_number(123) == 'N° V-000123'
        assert format_receipt_number(1234567) == 'N° V-1234567'

    def test_missing_client_uses_fallback(self):
        assert client_display_name(None) == NOT_REGISTERED
        assert client_display_name({'first_name': '', 'last_name': None}) == NOT_REGISTERED

    def test_client_name(self):
        assert client_display_name({'first_name': 'Ana', 'last_name': 'Quispe'}) == 'Ana Quispe'
        assert client_display_name({'first_name': 'Ana', 'last_name': None}) == 'Ana'

    def test_medicine_label(self):
        assert medicine_label({'code': 'PAR500', 'name': 'Paracetamol'}, 1) == 'PAR500 - Paracetamol'
        assert medicine_label(None, 99) == '#99'


class TestLogoFiles:
    """Tests para la lectura del logo"""

    def test_absolute_path_is_read_as_given(self, tmp_path, png_logo):
        logo = tmp_path / 'logo.png'
        logo.write_bytes(png_logo)

        assert load_logo_bytes(str(logo)) == png_logo

    def test_missing_file_is_none(self, tmp_path):
        assert load_logo_bytes(str(tmp_path / 'no-existe.png')) is None
        assert load_logo_bytes(None) is None

    def test_setting_url_becomes_relative_path(self):
        assert logo_file_path('/static/images/logo.png') == 'static/images/logo.png'
        assert logo_file_path('static/logo.png') == 'static/logo.png'
        assert logo_file_path('') is None
