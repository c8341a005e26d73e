"""
Pharmacy Receipt and Report Generator
Generador de comprobantes de venta y reportes en PDF

This module lays out the itemized sale receipt and the paginated table
reports on A4 pages. Layout is computed with the Helvetica glyph metrics
so wrapping and right alignment are deterministic.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Any, Optional, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4

from pdf_layout import (
    DARK, FONT_BOLD, FONT_REGULAR, LIGHT_GREY, MUTED, WHITE,
    Align, ColumnSpec, LayoutCursor, RenderedDocument, text_width, try_decode_logo, wrap_text,
)
from utils import (
    DEFAULT_COMPANY_INFO, client_display_name, format_cell, format_currency,
    format_datetime_local, format_money, format_receipt_number, medicine_label, to_decimal,
)


def item_subtotal(item: Dict[str, Any]) -> Decimal:
    """Stored subtotal of a sale item, or quantity x unit price when missing."""
    if item.get('subtotal') is not None:
        return to_decimal(item['subtotal'])
    return to_decimal(item.get('quantity', 0)) * to_decimal(item.get('unit_price', 0))


def receipt_total(sale: Dict[str, Any], items: Sequence[Dict[str, Any]]) -> Decimal:
    if sale.get('total') is not None:
        return to_decimal(sale['total'])
    return sum((item_subtotal(item) for item in items), Decimal('0'))


class ReportTableGenerator:
    """
    Paginated table report

    Title block, one header band per page, fixed-height single-line rows
    and a closing separator line.
    """

    MARGIN = 36
    LOGO_BAND = 60
    HEADER_HEIGHT = 18
    ROW_HEIGHT = 14
    FONT_SIZE = 9
    CELL_PADDING = 6
    BOTTOM_SAFETY = 50

    ACCENT = colors.Color(0.06, 0.45, 0.75)
    ROW_ALT = colors.Color(0.94, 0.96, 0.98)

    def __init__(self, page_size=A4):
        self.page_size = page_size
        self.width, self.height = page_size

    @property
    def table_width(self) -> float:
        return self.width - self.MARGIN * 2

    def column_widths(self, columns: Sequence[ColumnSpec]) -> List[int]:
        """Split the table width by column weight, flooring each share."""
        total_weight = sum(column.weight for column in columns) or 1
        return [math.floor(self.table_width * column.weight / total_weight) for column in columns]

    def render(self, rows: Sequence[Dict[str, Any]], columns: Sequence[ColumnSpec], title: str,
               logo: Optional[bytes] = None, generated_at: Optional[datetime] = None) -> RenderedDocument:
        display_title = title.replace('_', ' ')
        document = RenderedDocument(self.page_size, title=display_title)
        cursor = LayoutCursor(document, top=self.height - self.MARGIN,
                              bottom_limit=self.MARGIN + self.BOTTOM_SAFETY)

        self._draw_title_block(cursor, display_title, logo, generated_at or datetime.now())

        widths = self.column_widths(columns)
        self._draw_header_band(cursor, columns, widths)

        for index, row in enumerate(rows):
            if cursor.needs_break():
                cursor.new_page()
                self._draw_header_band(cursor, columns, widths)
            self._draw_row(cursor, row, columns, widths, index)

        cursor.page.draw_line((self.MARGIN, self.MARGIN + 18), (self.width - self.MARGIN, self.MARGIN + 18),
                              0.5, LIGHT_GREY)
        return document.finalize()

    def _draw_title_block(self, cursor: LayoutCursor, title: str, logo: Optional[bytes], generated_at: datetime):
        page = cursor.page
        top = cursor.y

        decoded = try_decode_logo(logo)
        if decoded:
            logo_w, logo_h = decoded.scaled_to_height(self.LOGO_BAND)
            page.draw_image(decoded.image, self.MARGIN, top - self.LOGO_BAND, logo_w, logo_h)

        page.draw_text(self.MARGIN + 200, top - 12, title, 16, FONT_BOLD, self.ACCENT)
        page.draw_text(self.MARGIN, top - 80, f"Fecha: {generated_at.strftime('%d/%m/%Y')}", 10)
        page.draw_text(self.MARGIN, top - 92, "Generado por el sistema de gestión de farmacia", 10)
        cursor.move_down(100)

    def _draw_header_band(self, cursor: LayoutCursor, columns, widths: List[int]):
        x = self.MARGIN
        for column, col_w in zip(columns, widths):
            cursor.page.draw_rect(x, cursor.y - self.HEADER_HEIGHT, col_w, self.HEADER_HEIGHT, self.ACCENT)
            cursor.page.draw_text(x + self.CELL_PADDING, cursor.y - self.HEADER_HEIGHT + 4, column.label,
                                  self.FONT_SIZE, FONT_BOLD, WHITE)
            x += col_w
        cursor.move_down(self.HEADER_HEIGHT + 8)

    def _draw_row(self, cursor: LayoutCursor, row: Dict[str, Any], columns, widths: List[int], index: int):
        page = cursor.page
        if index % 2 == 1:
            page.draw_rect(self.MARGIN, cursor.y - self.ROW_HEIGHT + 1, sum(widths), self.ROW_HEIGHT, self.ROW_ALT)

        x = self.MARGIN
        for column, col_w in zip(columns, widths):
            # single line: multi-line blobs are flattened, never wrapped or cut
            text = format_cell(row.get(column.key)).replace('\n', ' | ')
            if column.align is Align.RIGHT:
                text_x = x + col_w - self.CELL_PADDING - text_width(text, self.FONT_SIZE)
            else:
                text_x = x + self.CELL_PADDING
            page.draw_text(text_x, cursor.y - 10, text, self.FONT_SIZE, FONT_REGULAR, DARK)
            x += col_w
        cursor.move_down(self.ROW_HEIGHT)


class ReceiptGenerator:
    """
    Comprobante de venta en A4

    Cabecera con logo y datos de la empresa, bloque con número, fecha y
    cliente, tabla Detalle | Precio unit. | Cantidad | Subtotal con el
    detalle ajustado al ancho de la columna, y pie con el total.
    """

    MARGIN = 42
    HEADER_BAND = 90
    INFO_BAND = 55
    TABLE_HEADER = 22
    ROW_PAD = 8
    LINE_HEIGHT = 12
    MIN_ROW_HEIGHT = 18
    FONT_SIZE = 10
    BREAK_LIMIT = 120
    FOOTER_RESERVE = 100
    COLUMN_SHARES = (0.58, 0.15, 0.12)

    ACCENT = colors.Color(0.05, 0.47, 0.66)
    ACCENT_LIGHT = colors.Color(0.92, 0.96, 0.98)
    SEPARATOR = colors.Color(0.85, 0.85, 0.85)
    RULE = colors.Color(0.7, 0.7, 0.7)

    TITLE = "COMPROBANTE DE VENTA"

    def __init__(self, company_info: Optional[Dict[str, str]] = None, page_size=A4):
        self.company_info = dict(DEFAULT_COMPANY_INFO)
        if company_info:
            self.company_info.update({k: v for k, v in company_info.items() if v})
        self.page_size = page_size
        self.width, self.height = page_size

    @property
    def table_width(self) -> float:
        return self.width - self.MARGIN * 2

    def column_widths(self) -> List[float]:
        """Detalle, precio, cantidad and subtotal widths; subtotal takes the remainder."""
        detail, price, quantity = (math.floor(self.table_width * share) for share in self.COLUMN_SHARES)
        return [detail, price, quantity, self.table_width - (detail + price + quantity)]

    # ----------- CONSTRUCCIÓN DEL COMPROBANTE -----------

    def render(self, sale: Dict[str, Any], items: Sequence[Dict[str, Any]],
               logo: Optional[bytes] = None) -> RenderedDocument:
        document = RenderedDocument(self.page_size, title=f"Comprobante {format_receipt_number(sale.get('id'))}")
        cursor = LayoutCursor(document, top=self.height - self.MARGIN,
                              bottom_limit=self.MARGIN + self.BREAK_LIMIT)
        total = receipt_total(sale, items)

        self._draw_company_header(cursor, logo)
        self._draw_receipt_details(cursor, sale, total)
        self._draw_table_header(cursor)
        self._draw_items(cursor, items)
        self._draw_totals(cursor, total)
        self._draw_footer(cursor)
        return document.finalize()

    def _draw_company_header(self, cursor: LayoutCursor, logo: Optional[bytes]):
        page = cursor.page
        top = cursor.y

        decoded = try_decode_logo(logo)
        if decoded:
            logo_w, logo_h = decoded.scaled_to_height(self.HEADER_BAND - 20)
            page.draw_image(decoded.image, self.MARGIN, top - logo_h + 6, logo_w, logo_h)

        right_x = self.width - self.MARGIN
        title_w = text_width(self.TITLE, 18, FONT_BOLD)
        page.draw_text(right_x - title_w, top - 6, self.TITLE, 18, FONT_BOLD, self.ACCENT)

        line_y = top - 28
        for line in (self.company_info['name'], self.company_info['tagline']):
            page.draw_text(right_x - text_width(line, 9), line_y, line, 9, FONT_REGULAR, MUTED)
            line_y -= 11

        cursor.move_down(self.HEADER_BAND)
        page.draw_line((self.MARGIN, cursor.y), (self.width - self.MARGIN, cursor.y), 0.8, self.ACCENT_LIGHT)
        cursor.move_down(16)

    def _draw_receipt_details(self, cursor: LayoutCursor, sale: Dict[str, Any], total: Decimal):
        page = cursor.page
        block_top = cursor.y + self.INFO_BAND

        page.draw_text(self.MARGIN, block_top - 18, format_receipt_number(sale.get('id')), 12, FONT_BOLD, DARK)
        page.draw_text(self.MARGIN, block_top - 34, format_datetime_local(sale.get('sale_date')), 9,
                       FONT_REGULAR, MUTED)

        total_small = f"Total: {format_currency(total)}"
        total_small_w = text_width(total_small, 12, FONT_BOLD)
        page.draw_text(self.width - self.MARGIN - total_small_w, block_top - 18, total_small, 12, FONT_BOLD, DARK)

        page.draw_text(self.MARGIN, cursor.y + 8, "Cliente:", 10, FONT_BOLD, MUTED)
        page.draw_text(self.MARGIN + 62, cursor.y + 8, client_display_name(sale.get('client')), 10,
                       FONT_REGULAR, DARK)

        cursor.move_down(self.INFO_BAND + 8)

    def _draw_table_header(self, cursor: LayoutCursor):
        page = cursor.page
        detail_w, price_w, quantity_w, _ = self.column_widths()
        head_y = cursor.y - self.TABLE_HEADER + 12

        page.draw_rect(self.MARGIN, cursor.y - self.TABLE_HEADER + 6, self.table_width, self.TABLE_HEADER,
                       self.ACCENT)
        offsets = (0, detail_w, detail_w + price_w, detail_w + price_w + quantity_w)
        for label, offset in zip(("DETALLE", "PRECIO U.", "CANT.", "SUBTOTAL"), offsets):
            page.draw_text(self.MARGIN + offset + 8, head_y, label, self.FONT_SIZE, FONT_BOLD, WHITE)

        cursor.move_down(self.TABLE_HEADER + 6)

    def _draw_items(self, cursor: LayoutCursor, items: Sequence[Dict[str, Any]]):
        detail_w, price_w, quantity_w, _ = self.column_widths()
        table_x = self.MARGIN
        boundaries = (table_x + detail_w, table_x + detail_w + price_w,
                      table_x + detail_w + price_w + quantity_w)

        for index, item in enumerate(items):
            if cursor.needs_break():
                # only the table header is repeated on continuation pages
                cursor.new_page(top=self.height - self.MARGIN - 20)
                self._draw_table_header(cursor)

            page = cursor.page
            detail = medicine_label(item.get('medicine'), item.get('medicine_id'))
            lines = wrap_text(detail, detail_w - self.ROW_PAD * 2, self.FONT_SIZE)
            row_h = max(self.MIN_ROW_HEIGHT, max(1, len(lines)) * self.LINE_HEIGHT + 8)

            background = WHITE if index % 2 == 0 else self.ACCENT_LIGHT
            page.draw_rect(table_x, cursor.y - row_h + 6, self.table_width, row_h, background)

            line_y = cursor.y - 10
            for line in lines:
                page.draw_text(table_x + self.ROW_PAD, line_y, line, self.FONT_SIZE, FONT_REGULAR, DARK)
                line_y -= self.LINE_HEIGHT

            numbers = (
                format_money(item.get('unit_price')),
                format_cell(item.get('quantity')) or '0',
                format_money(item_subtotal(item)),
            )
            right_edges = (boundaries[1], boundaries[2], table_x + self.table_width)
            for value, right_edge in zip(numbers, right_edges):
                value_w = text_width(value, self.FONT_SIZE)
                page.draw_text(right_edge - value_w - self.ROW_PAD, cursor.y - 8, value, self.FONT_SIZE,
                               FONT_REGULAR, DARK)

            for boundary in boundaries:
                page.draw_line((boundary, cursor.y + 6), (boundary, cursor.y - row_h + 6), 0.6, self.SEPARATOR)

            cursor.move_down(row_h + 6)

    def _draw_totals(self, cursor: LayoutCursor, total: Decimal):
        if cursor.y < self.MARGIN + self.FOOTER_RESERVE:
            cursor.new_page(top=self.height - self.MARGIN - 20)

        page = cursor.page
        table_right = self.MARGIN + self.table_width
        page.draw_line((self.MARGIN, cursor.y + 6), (table_right, cursor.y + 6), 0.8, self.RULE)
        cursor.move_down(6)

        total_value = format_currency(total)
        total_w = text_width(total_value, 16, FONT_BOLD)
        page.draw_text(table_right - total_w - 8 - 60, cursor.y - 2, "TOTAL", 12, FONT_BOLD, MUTED)
        page.draw_text(table_right - total_w - 8, cursor.y - 6, total_value, 16, FONT_BOLD, DARK)
        cursor.move_down(40)

    def _draw_footer(self, cursor: LayoutCursor):
        page = cursor.page
        footer_y = self.MARGIN + 30
        page.draw_line((self.MARGIN, footer_y + 30), (self.width - self.MARGIN, footer_y + 30), 0.5,
                       self.ACCENT_LIGHT)

        page.draw_text(self.MARGIN, footer_y + 10, self.company_info['name'], 10, FONT_BOLD, self.ACCENT)
        page.draw_text(self.MARGIN, footer_y - 2, self.company_info['address'], 9, FONT_REGULAR, MUTED)
        page.draw_text(self.MARGIN, footer_y - 14, self.company_info['contact'], 9, FONT_REGULAR, MUTED)

        message = self.company_info['message']
        page.draw_text(self.width - self.MARGIN - text_width(message, 10), footer_y - 2, message, 10,
                       FONT_REGULAR, MUTED)


# Helper functions for easy use
def generate_pdf_receipt(sale: Dict[str, Any], items: Sequence[Dict[str, Any]],
                         logo: Optional[bytes] = None, company_info: Optional[Dict[str, str]] = None) -> bytes:
    """
    Convenience function to generate a sale receipt PDF

    Args:
        sale: Sale record with embedded client
        items: Sale item records with embedded medicine
        logo: Optional PNG bytes
        company_info: Company branding lines (defaults when omitted)

    Returns:
        PDF bytes
    """
    return ReceiptGenerator(company_info).render(sale, items, logo).to_pdf_bytes()
