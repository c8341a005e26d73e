"""
Tests para los generadores PDF: tabla paginada de reportes y comprobante de venta
"""
import unittest
from datetime import datetime
from decimal import Decimal

import pytest

from pdf_layout import FONT_REGULAR, Align, ColumnSpec, ImageOp, TextOp, text_width
from receipt_generator import ReceiptGenerator, ReportTableGenerator, generate_pdf_receipt, receipt_total


COLUMNS = (
    ColumnSpec('code', 'Código', 2),
    ColumnSpec('name', 'Nombre', 4),
    ColumnSpec('stock', 'Stock', 1, Align.RIGHT),
    ColumnSpec('sale_price', 'P. Venta', 2, Align.RIGHT),
)


def stock_rows(count):
    return [{'code': f'MED{i:03d}', 'name': f'Medicamento {i}', 'stock': i, 'sale_price': f'{i}.50'}
            for i in range(count)]


def text_ops(page):
    return [op for op in page.ops if isinstance(op, TextOp)]


class TestReportTableGenerator:
    """Tests para la tabla paginada"""

    def setup_method(self):
        self.generator = ReportTableGenerator()

    def test_column_widths_are_floored_weight_shares(self):
        widths = self.generator.column_widths(COLUMNS)

        assert all(isinstance(w, int) for w in widths)
        assert sum(widths) <= self.generator.table_width
        assert self.generator.table_width - sum(widths) < len(COLUMNS)
        assert widths[1] >= 2 * widths[0] - 1

    def test_small_report_fits_one_page(self):
        document = self.generator.render(stock_rows(5), COLUMNS, 'Inventario', generated_at=datetime(2024, 3, 3))

        assert document.page_count == 1
        texts = document.texts()
        assert 'Fecha: 03/03/2024' in texts
        assert 'MED004' in texts

    def test_title_underscores_become_spaces(self):
        document = self.generator.render([], COLUMNS, 'Reporte: ventas_por_cliente')
        assert 'Reporte: ventas por cliente' in document.texts()

    def test_empty_report_still_draws_header_band(self):
        document = self.generator.render([], COLUMNS, 'Vacío')

        assert document.page_count == 1
        for column in COLUMNS:
            assert column.label in document.texts()

    def test_pagination_redraws_header_on_every_page(self):
        rows = stock_rows(100)
        document = self.generator.render(rows, COLUMNS, 'Inventario')

        assert document.page_count > 1
        for page in document.pages:
            page_texts = page.texts()
            for column in COLUMNS:
                assert column.label in page_texts, f'falta {column.label} en la página {page.number}'

        # every row lands exactly once
        codes = [text for text in document.texts() if text.startswith('MED')]
        assert codes == [row['code'] for row in rows]

    def test_rows_stay_above_bottom_margin(self):
        document = self.generator.render(stock_rows(100), COLUMNS, 'Inventario')
        lowest = min(op.y for page in document.pages for op in text_ops(page) if op.text.startswith('MED'))
        assert lowest >= self.generator.MARGIN + self.generator.BOTTOM_SAFETY - self.generator.ROW_HEIGHT

    def test_right_aligned_cells_end_at_column_edge(self):
        document = self.generator.render(stock_rows(3), COLUMNS, 'Inventario')
        widths = self.generator.column_widths(COLUMNS)
        price_right = self.generator.MARGIN + sum(widths) - self.generator.CELL_PADDING

        price_ops = [op for op in text_ops(document.pages[0]) if op.text == '2.50']
        assert len(price_ops) == 1
        op = price_ops[0]
        assert op.x + text_width(op.text, op.size) == pytest.approx(price_right)

    def test_multiline_cells_are_flattened(self):
        columns = (ColumnSpec('items', 'Items', 1),)
        document = self.generator.render([{'items': 'A x1\nB x2'}], columns, 'Ventas')
        assert 'A x1 | B x2' in document.texts()

    def test_alternate_rows_have_background(self):
        document = self.generator.render(stock_rows(4), COLUMNS, 'Inventario')
        row_backgrounds = [op for op in document.pages[0].ops
                           if getattr(op, 'color', None) is self.generator.ROW_ALT]
        assert len(row_backgrounds) == 2

    def test_logo_is_embedded(self, png_logo):
        document = self.generator.render([], COLUMNS, 'Inventario', logo=png_logo)
        images = [op for op in document.pages[0].ops if isinstance(op, ImageOp)]

        assert len(images) == 1
        assert images[0].height == 60

    def test_undecodable_logo_is_skipped(self):
        document = self.generator.render(stock_rows(2), COLUMNS, 'Inventario', logo=b'\x89PNG roto')

        assert not [op for op in document.pages[0].ops if isinstance(op, ImageOp)]
        assert document.to_pdf_bytes().startswith(b'%PDF')


class TestReceiptGenerator(unittest.TestCase):
    """Tests para el comprobante de venta"""

    def setUp(self):
        self.generator = ReceiptGenerator()
        self.sale = {
            'id': 12,
            'sale_date': datetime(2024, 3, 1, 10, 15, 0),
            'total': 7.80,
            'client': {'first_name': 'Ana', 'last_name': 'Quispe'},
        }
        self.items = [
            {'sale_id': 12, 'medicine_id': 1, 'quantity': 10, 'unit_price': 0.6, 'subtotal': 6.00,
             'medicine': {'code': 'PAR500', 'name': 'Paracetamol 500mg'}},
            {'sale_id': 12, 'medicine_id': 2, 'quantity': 2, 'unit_price': 0.9, 'subtotal': 1.80,
             'medicine': {'code': 'IBU400', 'name': 'Ibuprofeno 400mg'}},
        ]

    def test_column_widths_fill_table(self):
        widths = self.generator.column_widths()
        self.assertEqual(len(widths), 4)
        self.assertAlmostEqual(sum(widths), self.generator.table_width)

    def test_receipt_contents(self):
        document = self.generator.render(self.sale, self.items)
        texts = document.texts()

        self.assertEqual(document.page_count, 1)
        self.assertIn('COMPROBANTE DE VENTA', texts)
        self.assertIn('N° V-000012', texts)
        self.assertIn('01/03/2024 10:15:00', texts)
        self.assertIn('Ana Quispe', texts)
        self.assertIn('Total: Bs. 7.80', texts)
        self.assertIn('PAR500 - Paracetamol 500mg', texts)
        self.assertIn('6.00', texts)
        self.assertIn('TOTAL', texts)
        self.assertIn('Bs. 7.80', texts)

    def test_missing_client_uses_fallback(self):
        sale = dict(self.sale, client=None)
        self.assertIn('No registrado', self.generator.render(sale, self.items).texts())

    def test_missing_medicine_uses_placeholder(self):
        items = [{'sale_id': 12, 'medicine_id': 99, 'quantity': 1, 'unit_price': 4.0, 'subtotal': None,
                  'medicine': None}]
        texts = self.generator.render(dict(self.sale, total=None), items).texts()

        self.assertIn('#99', texts)
        self.assertIn('4.00', texts)

    def test_missing_quantity_prints_zero(self):
        items = [dict(self.items[0], quantity=None, subtotal=4.0)]
        texts = self.generator.render(self.sale, items).texts()

        self.assertNotIn('None', texts)
        self.assertIn('0', texts)

    def test_total_falls_back_to_item_subtotals(self):
        self.assertEqual(receipt_total({'total': None}, self.items), Decimal('7.80'))

    def test_long_detail_is_wrapped_inside_column(self):
        detail_w = self.generator.column_widths()[0]
        name = ('Amoxicilina con acido clavulanico 875 mg tabletas recubiertas caja por '
                '14 unidades presentacion hospitalaria de uso exclusivo')
        items = [dict(self.items[0], medicine={'code': 'AMX875', 'name': name})]
        document = self.generator.render(self.sale, items)

        detail_x = self.generator.MARGIN + self.generator.ROW_PAD
        detail_lines = [op for op in text_ops(document.pages[0])
                        if op.x == detail_x and op.font == FONT_REGULAR]
        self.assertGreaterEqual(len(detail_lines), 2)
        for op in detail_lines:
            self.assertLessEqual(text_width(op.text, op.size), detail_w - self.generator.ROW_PAD * 2)

    def test_many_items_paginate_with_table_header(self):
        items = [dict(self.items[0], medicine={'code': f'M{i:02d}', 'name': 'Paracetamol 500mg'})
                 for i in range(40)]
        document = self.generator.render(dict(self.sale, total=None), items)

        self.assertGreater(document.page_count, 1)
        for page in document.pages:
            self.assertIn('DETALLE', page.texts())
        self.assertIn('TOTAL', document.pages[-1].texts())
        self.assertIn('Bs. 240.00', document.pages[-1].texts())

    def test_company_info_override(self):
        generator = ReceiptGenerator({'name': 'FARMACIA CENTRAL', 'message': ''})
        texts = generator.render(self.sale, self.items).texts()

        self.assertIn('FARMACIA CENTRAL', texts)
        # empty values keep the default
        self.assertIn('Gracias por su preferencia.', texts)

    def test_bad_logo_is_tolerated(self):
        document = self.generator.render(self.sale, self.items, logo=b'no es una imagen')
        self.assertFalse([op for op in document.pages[0].ops if isinstance(op, ImageOp)])

    def test_generate_pdf_receipt(self):
        data = generate_pdf_receipt(self.sale, self.items)
        self.assertTrue(data.startswith(b'%PDF'))


def test_receipt_logo_is_scaled_to_header(png_logo):
    document = ReceiptGenerator().render({'id': 1, 'total': 0}, [], logo=png_logo)
    images = [op for op in document.pages[0].ops if isinstance(op, ImageOp)]

    assert len(images) == 1
    assert images[0].height <= ReceiptGenerator.HEADER_BAND - 20
