"""
Report dispatcher
Selección, agregación y exportación de los reportes de farmacia

Each report kind is a ReportVariant: how to fetch its records from the
RecordSource, how to turn them into rows, and the columns used for the PDF
table. Aggregators are plain functions over lists of dicts so they can be
tested without a database.
"""
import enum
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from csv_export import encode_csv
from errors import InvalidRequest, UnsupportedKind
from pdf_layout import Align, ColumnSpec
from receipt_generator import ReportTableGenerator, item_subtotal
from utils import (
    client_display_name, format_iso_date, format_money, format_timestamp,
    log_success, medicine_label, to_decimal,
)

logger = logging.getLogger(__name__)

END_OF_DAY = time(23, 59, 59, 999000)
EXPIRY_WINDOW_DAYS = 30

Row = Dict[str, Any]


class ReportKind(str, enum.Enum):
    SALES_DETAILED = "ventas_detallado"
    SALES_DAILY = "ventas_resumen"
    SALES_BY_CLIENT = "ventas_por_cliente"
    INVENTORY = "inventario_actual"
    STOCK_MOVEMENTS = "movimientos"
    EXPIRING = "por_vencer"
    LOW_STOCK = "stock_bajo"
    BELOW_MINIMUM = "minimos"
    TOP_PRODUCTS = "productos_mas_vendidos"
    CRITICAL_STOCK = "stock_critico"

    @classmethod
    def parse(cls, value: Any) -> 'ReportKind':
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedKind(value)


class ReportFormat(enum.Enum):
    PDF = "PDF"
    CSV = "CSV"


def _parse_date(value: Any, field: str) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidRequest(f'Fecha inválida en {field}: {value}', field=field)


def _parse_threshold(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise InvalidRequest('threshold debe ser numérico', field='threshold')
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidRequest('threshold debe ser numérico', field='threshold')


@dataclass(frozen=True)
class ReportRequest:
    kind: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    format: ReportFormat = ReportFormat.PDF
    threshold: Optional[float] = None
    requested_by: Optional[str] = None

    @property
    def kind_value(self) -> str:
        return str(getattr(self.kind, 'value', self.kind))

    def window(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Inclusive datetime bounds: start of the first day, last millisecond of the last one."""
        start = datetime.combine(self.start_date, time.min) if self.start_date else None
        end = datetime.combine(self.end_date, END_OF_DAY) if self.end_date else None
        return start, end

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> 'ReportRequest':
        """
        Build a request from the JSON body of the reports endpoint

        Args:
            payload: dict with tipoReporte, fechaInicio, fechaFin, formato,
                threshold and userId (all optional)

        Raises:
            InvalidRequest: unparseable date, threshold or format
        """
        payload = payload or {}
        if not isinstance(payload, dict):
            raise InvalidRequest('El cuerpo de la solicitud debe ser un objeto JSON')

        format_value = str(payload.get('formato') or 'PDF').upper()
        try:
            report_format = ReportFormat(format_value)
        except ValueError:
            raise InvalidRequest(f'Formato no soportado: {format_value}', field='formato')

        requested_by = payload.get('userId')
        return cls(
            kind=str(payload.get('tipoReporte') or ReportKind.INVENTORY.value),
            start_date=_parse_date(payload.get('fechaInicio'), 'fechaInicio'),
            end_date=_parse_date(payload.get('fechaFin'), 'fechaFin'),
            format=report_format,
            threshold=_parse_threshold(payload.get('threshold')),
            requested_by=str(requested_by) if requested_by is not None else None,
        )


# ----------- PREDICADOS -----------

def below_threshold(threshold: float) -> Callable[[Dict[str, Any]], bool]:
    """Medicines whose stock is at or under a caller-given threshold."""
    def predicate(medicine):
        return (medicine.get('stock') or 0) <= threshold
    return predicate


def below_own_minimum(medicine: Dict[str, Any]) -> bool:
    """Medicines whose stock is at or under their own configured minimum."""
    return (medicine.get('stock') or 0) <= (medicine.get('min_stock') or 0)


def critical_stock(medicine: Dict[str, Any]) -> bool:
    """Critical tier: stock at or under half the configured minimum."""
    return (medicine.get('stock') or 0) <= (medicine.get('min_stock') or 0) / 2


def expires_within(expiry_from: date, expiry_to: date) -> Callable[[Dict[str, Any]], bool]:
    def predicate(medicine):
        expiry = medicine.get('expiry_date')
        if expiry is None:
            return False
        if isinstance(expiry, datetime):
            expiry = expiry.date()
        elif not isinstance(expiry, date):
            expiry = date.fromisoformat(str(expiry)[:10])
        return expiry_from <= expiry <= expiry_to
    return predicate


# ----------- AGREGADORES -----------

def aggregate_sales_detailed(sales: Sequence[Dict[str, Any]], items: Sequence[Dict[str, Any]]) -> List[Row]:
    """One row per sale with its items flattened into a multi-line text blob."""
    items_by_sale: Dict[Any, List[str]] = {}
    for item in items:
        label = medicine_label(item.get('medicine'), item.get('medicine_id'))
        items_by_sale.setdefault(item.get('sale_id'), []).append(f"{label} x{item.get('quantity') or 0}")

    return [{
        'sale_id': sale.get('id'),
        'date': format_iso_date(sale.get('sale_date')),
        'client': client_display_name(sale.get('client')),
        'total': format_money(sale.get('total')),
        'status': sale.get('status') or '',
        'items': '\n'.join(items_by_sale.get(sale.get('id'), [])),
    } for sale in sales]


def aggregate_sales_daily(sales: Sequence[Dict[str, Any]]) -> List[Row]:
    """Count and total per calendar date, newest date first."""
    days: Dict[str, List[Any]] = {}
    for sale in sales:
        day = format_iso_date(sale.get('sale_date'))
        bucket = days.setdefault(day, [0, Decimal('0')])
        bucket[0] += 1
        bucket[1] += to_decimal(sale.get('total'))

    rows = [{'date': day, 'count': count, 'total': format_money(total)}
            for day, (count, total) in days.items()]
    return sorted(rows, key=lambda row: row['date'], reverse=True)


def aggregate_sales_by_client(sales: Sequence[Dict[str, Any]]) -> List[Row]:
    """
    Count and total per client display name

    Sales without a client are merged into a single "No registrado" row.
    Rows keep the order in which each client first appears.
    """
    clients: 'OrderedDict[str, List[Any]]' = OrderedDict()
    for sale in sales:
        name = client_display_name(sale.get('client'))
        bucket = clients.setdefault(name, [0, Decimal('0')])
        bucket[0] += 1
        bucket[1] += to_decimal(sale.get('total'))

    return [{'client': name, 'count': count, 'total': format_money(total)}
            for name, (count, total) in clients.items()]


def aggregate_inventory(medicines: Sequence[Dict[str, Any]]) -> List[Row]:
    return [{
        'id': m.get('id'),
        'code': m.get('code') or '',
        'name': m.get('name') or '',
        'stock': int(m.get('stock') or 0),
        'min_stock': int(m.get('min_stock') or 0),
        'sale_price': format_money(m.get('sale_price')),
        'expiry_date': format_iso_date(m.get('expiry_date')),
        'status': m.get('status') or '',
    } for m in medicines]


def aggregate_stock_movements(entries: Sequence[Dict[str, Any]], exits: Sequence[Dict[str, Any]]) -> List[Row]:
    """
    Inbound and outbound movements in one list, newest first

    Every row carries the same keys; unit_cost only applies to inbound rows
    and reason only to outbound ones, the other side is left blank.
    """
    rows = []
    for entry in entries:
        rows.append({
            'type': 'ENTRADA',
            'date': format_timestamp(entry.get('entry_date')),
            'medicine': medicine_label(entry.get('medicine'), entry.get('medicine_id')),
            'quantity': int(entry.get('quantity') or 0),
            'unit_cost': format_money(entry.get('unit_cost')),
            'reason': '',
            'notes': entry.get('notes') or '',
        })
    for exit_ in exits:
        rows.append({
            'type': 'SALIDA',
            'date': format_timestamp(exit_.get('exit_date')),
            'medicine': medicine_label(exit_.get('medicine'), exit_.get('medicine_id')),
            'quantity': int(exit_.get('quantity') or 0),
            'unit_cost': '',
            'reason': exit_.get('reason') or '',
            'notes': '',
        })
    return sorted(rows, key=lambda row: row['date'], reverse=True)


def aggregate_expiring(medicines: Sequence[Dict[str, Any]], expiry_from: date, expiry_to: date) -> List[Row]:
    in_range = expires_within(expiry_from, expiry_to)
    return [{
        'id': m.get('id'),
        'code': m.get('code') or '',
        'name': m.get('name') or '',
        'expiry_date': format_iso_date(m.get('expiry_date')),
        'stock': int(m.get('stock') or 0),
    } for m in medicines if in_range(m)]


def aggregate_low_stock(medicines: Sequence[Dict[str, Any]], threshold: Optional[float] = None) -> List[Row]:
    """Low stock rows; a given threshold replaces each medicine's own minimum."""
    predicate = below_threshold(threshold) if threshold is not None else below_own_minimum
    return [{
        'id': m.get('id'),
        'code': m.get('code') or '',
        'name': m.get('name') or '',
        'stock': int(m.get('stock') or 0),
        'min_stock': int(m.get('min_stock') or 0),
        'sale_price': format_money(m.get('sale_price')),
    } for m in medicines if predicate(m)]


def aggregate_top_products(items: Sequence[Dict[str, Any]]) -> List[Row]:
    """Units sold and revenue per medicine, best sellers first."""
    products: 'OrderedDict[Any, Dict[str, Any]]' = OrderedDict()
    for item in items:
        medicine_id = item.get('medicine_id')
        medicine = item.get('medicine') or {}
        product = products.setdefault(medicine_id, {
            'code': medicine.get('code') or f"#{medicine_id}",
            'name': medicine.get('name') or f"Medicamento #{medicine_id}",
            'quantity': 0,
            'revenue': Decimal('0'),
        })
        product['quantity'] += int(item.get('quantity') or 0)
        product['revenue'] += item_subtotal(item)

    ranked = sorted(products.values(), key=lambda p: (p['quantity'], p['revenue']), reverse=True)
    return [{
        'code': p['code'],
        'name': p['name'],
        'quantity': p['quantity'],
        'revenue': format_money(p['revenue']),
    } for p in ranked]


def aggregate_critical_stock(medicines: Sequence[Dict[str, Any]]) -> List[Row]:
    return [{
        'id': m.get('id'),
        'code': m.get('code') or '',
        'name': m.get('name') or '',
        'stock': int(m.get('stock') or 0),
        'min_stock': int(m.get('min_stock') or 0),
    } for m in medicines if critical_stock(m)]


# ----------- VARIANTES -----------

def expiry_range(request: ReportRequest, today: date) -> Tuple[date, date]:
    """Requested range when both dates are given, otherwise the next 30 days from today."""
    if request.start_date and request.end_date:
        return request.start_date, request.end_date
    return today, today + timedelta(days=EXPIRY_WINDOW_DAYS - 1)


def _fetch_sales(source, request, today):
    start, end = request.window()
    return {'sales': source.fetch_sales(start, end)}


def _fetch_sales_with_items(source, request, today):
    records = _fetch_sales(source, request, today)
    sale_ids = [sale['id'] for sale in records['sales']]
    records['items'] = source.fetch_sale_items(sale_ids) if sale_ids else []
    return records


def _fetch_medicines(source, request, today):
    return {'medicines': source.fetch_medicines()}


def _fetch_expiring(source, request, today):
    expiry_from, expiry_to = expiry_range(request, today)
    return {
        'medicines': source.fetch_medicines(expiry_from=expiry_from, expiry_to=expiry_to),
        'expiry_from': expiry_from,
        'expiry_to': expiry_to,
    }


def _fetch_movements(source, request, today):
    start, end = request.window()
    return {
        'entries': source.fetch_stock_entries(start, end),
        'exits': source.fetch_stock_exits(start, end),
    }


@dataclass(frozen=True)
class ReportVariant:
    kind: ReportKind
    title: str
    fetch: Callable[..., Dict[str, Any]]
    aggregate: Callable[[Dict[str, Any], ReportRequest], List[Row]]
    columns: Tuple[ColumnSpec, ...]


_STOCK_COLUMNS = (
    ColumnSpec('id', 'ID', 1, Align.RIGHT),
    ColumnSpec('code', 'Código', 2),
    ColumnSpec('name', 'Nombre', 4),
    ColumnSpec('stock', 'Stock', 1, Align.RIGHT),
    ColumnSpec('min_stock', 'Mínimo', 1, Align.RIGHT),
    ColumnSpec('sale_price', 'P. Venta', 2, Align.RIGHT),
)

REPORT_VARIANTS: Dict[ReportKind, ReportVariant] = {
    ReportKind.SALES_DETAILED: ReportVariant(
        ReportKind.SALES_DETAILED, 'Ventas detallado', _fetch_sales_with_items,
        lambda records, request: aggregate_sales_detailed(records['sales'], records['items']),
        (
            ColumnSpec('sale_id', 'Venta', 1, Align.RIGHT),
            ColumnSpec('date', 'Fecha', 2),
            ColumnSpec('client', 'Cliente', 3),
            ColumnSpec('total', 'Total', 2, Align.RIGHT),
            ColumnSpec('status', 'Estado', 2),
            ColumnSpec('items', 'Items', 5),
        ),
    ),
    ReportKind.SALES_DAILY: ReportVariant(
        ReportKind.SALES_DAILY, 'Resumen de ventas por día', _fetch_sales,
        lambda records, request: aggregate_sales_daily(records['sales']),
        (
            ColumnSpec('date', 'Fecha', 2),
            ColumnSpec('count', 'Ventas', 1, Align.RIGHT),
            ColumnSpec('total', 'Total', 1, Align.RIGHT),
        ),
    ),
    ReportKind.SALES_BY_CLIENT: ReportVariant(
        ReportKind.SALES_BY_CLIENT, 'Ventas por cliente', _fetch_sales,
        lambda records, request: aggregate_sales_by_client(records['sales']),
        (
            ColumnSpec('client', 'Cliente', 3),
            ColumnSpec('count', 'Ventas', 1, Align.RIGHT),
            ColumnSpec('total', 'Total', 1, Align.RIGHT),
        ),
    ),
    ReportKind.INVENTORY: ReportVariant(
        ReportKind.INVENTORY, 'Inventario actual', _fetch_medicines,
        lambda records, request: aggregate_inventory(records['medicines']),
        _STOCK_COLUMNS + (
            ColumnSpec('expiry_date', 'Vencimiento', 2),
            ColumnSpec('status', 'Estado', 2),
        ),
    ),
    ReportKind.STOCK_MOVEMENTS: ReportVariant(
        ReportKind.STOCK_MOVEMENTS, 'Movimientos de stock', _fetch_movements,
        lambda records, request: aggregate_stock_movements(records['entries'], records['exits']),
        (
            ColumnSpec('type', 'Tipo', 2),
            ColumnSpec('date', 'Fecha', 3),
            ColumnSpec('medicine', 'Medicamento', 4),
            ColumnSpec('quantity', 'Cant.', 1, Align.RIGHT),
            ColumnSpec('unit_cost', 'P. Unit.', 2, Align.RIGHT),
            ColumnSpec('reason', 'Motivo', 2),
            ColumnSpec('notes', 'Observaciones', 3),
        ),
    ),
    ReportKind.EXPIRING: ReportVariant(
        ReportKind.EXPIRING, 'Medicamentos por vencer', _fetch_expiring,
        lambda records, request: aggregate_expiring(
            records['medicines'], records['expiry_from'], records['expiry_to']),
        (
            ColumnSpec('id', 'ID', 1, Align.RIGHT),
            ColumnSpec('code', 'Código', 2),
            ColumnSpec('name', 'Nombre', 4),
            ColumnSpec('expiry_date', 'Vencimiento', 2),
            ColumnSpec('stock', 'Stock', 1, Align.RIGHT),
        ),
    ),
    ReportKind.LOW_STOCK: ReportVariant(
        ReportKind.LOW_STOCK, 'Productos con stock bajo', _fetch_medicines,
        lambda records, request: aggregate_low_stock(records['medicines'], request.threshold),
        _STOCK_COLUMNS,
    ),
    ReportKind.BELOW_MINIMUM: ReportVariant(
        ReportKind.BELOW_MINIMUM, 'Productos bajo el mínimo', _fetch_medicines,
        lambda records, request: aggregate_low_stock(records['medicines'], request.threshold),
        _STOCK_COLUMNS,
    ),
    ReportKind.TOP_PRODUCTS: ReportVariant(
        ReportKind.TOP_PRODUCTS, 'Productos más vendidos', _fetch_sales_with_items,
        lambda records, request: aggregate_top_products(records['items']),
        (
            ColumnSpec('code', 'Código', 2),
            ColumnSpec('name', 'Nombre', 5),
            ColumnSpec('quantity', 'Cantidad', 1, Align.RIGHT),
            ColumnSpec('revenue', 'Ingresos', 2, Align.RIGHT),
        ),
    ),
    ReportKind.CRITICAL_STOCK: ReportVariant(
        ReportKind.CRITICAL_STOCK, 'Stock crítico', _fetch_medicines,
        lambda records, request: aggregate_critical_stock(records['medicines']),
        _STOCK_COLUMNS[:5],
    ),
}


def resolve_variant(kind: Any) -> ReportVariant:
    """
    Raises:
        UnsupportedKind: kind is not one of the ReportKind values
    """
    return REPORT_VARIANTS[ReportKind.parse(kind)]


def dispatch(request: ReportRequest, source, today: Optional[date] = None) -> Tuple[List[Row], Tuple[ColumnSpec, ...]]:
    """
    Fetch and aggregate the rows of a report

    Args:
        request: The report request
        source: RecordSource to read from
        today: Reference date for default windows (defaults to date.today())

    Returns:
        (rows, columns) for the requested kind

    Raises:
        UnsupportedKind: before touching the record source
        SourceFetchFailure: propagated from the record source
    """
    variant = resolve_variant(request.kind)
    return _collect_rows(variant, request, source, today or date.today()), variant.columns


def _collect_rows(variant: ReportVariant, request: ReportRequest, source, today: date) -> List[Row]:
    records = variant.fetch(source, request, today)
    rows = variant.aggregate(records, request)
    logger.debug(f"Reporte {variant.kind.value}: {len(rows)} filas")
    return rows


# ----------- GENERACIÓN -----------

@dataclass(frozen=True)
class GeneratedReport:
    content: bytes
    mimetype: str
    filename: str
    row_count: int
    page_count: Optional[int] = None


def report_filename(request: ReportRequest, now: datetime) -> str:
    extension = 'csv' if request.format is ReportFormat.CSV else 'pdf'
    if request.start_date and request.end_date:
        stamp = f"{request.start_date.isoformat()}_{request.end_date.isoformat()}"
    else:
        stamp = now.strftime('%Y-%m-%d-%H-%M-%S')
    return f"reporte-{request.kind_value}-{stamp}.{extension}"


def generate_report(request: ReportRequest, source, audit=None, logo: Optional[bytes] = None,
                    now: Optional[datetime] = None) -> GeneratedReport:
    """
    Generate a report file end to end

    Opens a PENDIENTE audit record, dispatches, encodes the rows as CSV or
    renders the PDF table, then marks the audit record GENERADO with the
    output size. Any failure marks it ERROR and is re-raised.

    Args:
        request: The report request
        source: RecordSource to read from
        audit: Optional ReportAudit
        logo: Optional PNG bytes for the PDF title block
        now: Generation time (defaults to datetime.now())

    Returns:
        GeneratedReport with the file bytes, mimetype and download name
    """
    now = now or datetime.now()
    report_id = audit.open(request) if audit else None

    try:
        variant = resolve_variant(request.kind)
        rows = _collect_rows(variant, request, source, now.date())

        if request.format is ReportFormat.CSV:
            content = encode_csv(rows).encode('utf-8')
            mimetype = 'text/csv; charset=utf-8'
            page_count = None
        else:
            document = ReportTableGenerator().render(
                rows, variant.columns, f"Reporte: {variant.title}", logo=logo, generated_at=now)
            content = document.to_pdf_bytes()
            mimetype = 'application/pdf'
            page_count = document.page_count
    except Exception as e:
        if audit:
            audit.mark_error(report_id, getattr(e, 'message', str(e)))
        raise

    if audit:
        audit.mark_generated(report_id, len(content))

    report = GeneratedReport(content, mimetype, report_filename(request, now), len(rows), page_count)
    log_success('report_generated', f"{report.filename} ({report.row_count} filas)", {
        'report_kind': request.kind_value,
        'format': request.format.value,
        'size': len(content),
        'requested_by': request.requested_by,
    })
    return report
