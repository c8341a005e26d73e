"""
Access to the records behind every report

The report pipeline only talks to the RecordSource interface: fetch by
date range, fetch by id set, with the related client/medicine embedded
as a nested dict. SqlRecordSource implements it over the SQLAlchemy
models; ReportAudit keeps the best-effort audit trail of generated
reports, and ReceiptRegister numbers the issued sale receipts.
"""
import abc
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload

import models
from models import db
from errors import SourceFetchFailure

logger = logging.getLogger(__name__)


class RecordSource(abc.ABC):
    """Read-only query interface returning plain dict records."""

    @abc.abstractmethod
    def fetch_sales(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Sales with start <= sale_date <= end, newest id first, client embedded."""

    @abc.abstractmethod
    def fetch_sale(self, sale_id: int) -> Optional[Dict[str, Any]]:
        """A single sale with its client embedded, or None."""

    @abc.abstractmethod
    def fetch_sale_items(self, sale_ids: Iterable[int]) -> List[Dict[str, Any]]:
        """Items whose sale_id is in sale_ids, medicine embedded."""

    @abc.abstractmethod
    def fetch_medicines(self, expiry_from: Optional[date] = None,
                        expiry_to: Optional[date] = None) -> List[Dict[str, Any]]:
        """Medicines, optionally with expiry_from <= expiry_date <= expiry_to."""

    @abc.abstractmethod
    def fetch_stock_entries(self, start: Optional[datetime] = None,
                            end: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Inbound movements in the window, medicine embedded."""

    @abc.abstractmethod
    def fetch_stock_exits(self, start: Optional[datetime] = None,
                          end: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Outbound movements in the window, medicine embedded."""


def _client_record(client: Optional[models.Client]) -> Optional[Dict[str, Any]]:
    if client is None:
        return None
    return {
        'id': client.id,
        'first_name': client.first_name,
        'last_name': client.last_name,
        'ci': client.ci,
    }


def _medicine_ref(medicine: Optional[models.Medicine]) -> Optional[Dict[str, Any]]:
    if medicine is None:
        return None
    return {'code': medicine.code, 'name': medicine.name}


def _sale_record(sale: models.Sale) -> Dict[str, Any]:
    return {
        'id': sale.id,
        'client_id': sale.client_id,
        'user_id': sale.user_id,
        'sale_date': sale.sale_date,
        'total': sale.total,
        'status': sale.status,
        'client': _client_record(sale.client),
    }


def _medicine_record(medicine: models.Medicine) -> Dict[str, Any]:
    return {
        'id': medicine.id,
        'code': medicine.code,
        'name': medicine.name,
        'description': medicine.description,
        'expiry_date': medicine.expiry_date,
        'stock': medicine.stock,
        'min_stock': medicine.min_stock,
        'purchase_price': medicine.purchase_price,
        'sale_price': medicine.sale_price,
        'status': medicine.status,
    }


class SqlRecordSource(RecordSource):
    """RecordSource over the Flask-SQLAlchemy models (needs an app context)."""

    def _run(self, description: str, query_fn):
        try:
            return query_fn()
        except SQLAlchemyError as e:
            # leave the session usable for the audit update
            db.session.rollback()
            logger.error(f"Error consultando {description}: {e}")
            raise SourceFetchFailure(f'Error consultando {description}: {e}') from e

    def fetch_sales(self, start=None, end=None):
        def query():
            q = models.Sale.query.options(joinedload(models.Sale.client))
            if start is not None:
                q = q.filter(models.Sale.sale_date >= start)
            if end is not None:
                q = q.filter(models.Sale.sale_date <= end)
            return [_sale_record(sale) for sale in q.order_by(models.Sale.id.desc()).all()]

        return self._run('ventas', query)

    def fetch_sale(self, sale_id):
        def query():
            sale = models.Sale.query.options(joinedload(models.Sale.client)).filter_by(id=sale_id).first()
            return _sale_record(sale) if sale else None

        return self._run('venta', query)

    def fetch_sale_items(self, sale_ids):
        ids = list(sale_ids)
        if not ids:
            return []

        def query():
            items = models.SaleItem.query.options(joinedload(models.SaleItem.medicine)) \
                .filter(models.SaleItem.sale_id.in_(ids)) \
                .order_by(models.SaleItem.id).all()
            return [{
                'id': item.id,
                'sale_id': item.sale_id,
                'medicine_id': item.medicine_id,
                'quantity': item.quantity,
                'unit_price': item.unit_price,
                'subtotal': item.subtotal,
                'medicine': _medicine_ref(item.medicine),
            } for item in items]

        return self._run('items de venta', query)

    def fetch_medicines(self, expiry_from=None, expiry_to=None):
        def query():
            q = models.Medicine.query
            if expiry_from is not None:
                q = q.filter(models.Medicine.expiry_date >= expiry_from)
            if expiry_to is not None:
                q = q.filter(models.Medicine.expiry_date <= expiry_to)
            return [_medicine_record(m) for m in q.order_by(models.Medicine.id).all()]

        return self._run('medicamentos', query)

    def fetch_stock_entries(self, start=None, end=None):
        def query():
            q = models.StockEntry.query.options(joinedload(models.StockEntry.medicine))
            if start is not None:
                q = q.filter(models.StockEntry.entry_date >= start)
            if end is not None:
                q = q.filter(models.StockEntry.entry_date <= end)
            return [{
                'id': entry.id,
                'medicine_id': entry.medicine_id,
                'quantity': entry.quantity,
                'entry_date': entry.entry_date,
                'unit_cost': entry.unit_cost,
                'notes': entry.notes,
                'medicine': _medicine_ref(entry.medicine),
            } for entry in q.all()]

        return self._run('entradas de inventario', query)

    def fetch_stock_exits(self, start=None, end=None):
        def query():
            q = models.StockExit.query.options(joinedload(models.StockExit.medicine))
            if start is not None:
                q = q.filter(models.StockExit.exit_date >= start)
            if end is not None:
                q = q.filter(models.StockExit.exit_date <= end)
            return [{
                'id': exit_.id,
                'medicine_id': exit_.medicine_id,
                'quantity': exit_.quantity,
                'exit_date': exit_.exit_date,
                'reason': exit_.reason,
                'medicine': _medicine_ref(exit_.medicine),
            } for exit_ in q.all()]

        return self._run('salidas de inventario', query)


class ReportAudit:
    """
    Best-effort audit trail (PENDIENTE -> GENERADO | ERROR)

    Failures here are logged and swallowed; they never change the outcome
    of the report itself.
    """

    def open(self, request) -> Optional[int]:
        try:
            log = models.ReportLog(
                kind=request.kind_value,
                format=request.format.value,
                start_date=request.start_date,
                end_date=request.end_date,
                parameters={'threshold': request.threshold} if request.threshold is not None else {},
                status=models.ReportStatus.PENDING,
                created_by=request.requested_by,
            )
            db.session.add(log)
            db.session.commit()
            return log.id
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning(f"No se pudo crear registro en reportes (continuando sin id): {e}")
            return None

    def mark_generated(self, report_id: Optional[int], size: int, notes: str = 'descarga directa'):
        self._update(report_id, status=models.ReportStatus.GENERATED, result_size=size, notes=notes)

    def mark_error(self, report_id: Optional[int], note: str):
        self._update(report_id, status=models.ReportStatus.ERROR, notes=note)

    def _update(self, report_id: Optional[int], **values):
        if report_id is None:
            return
        try:
            log = db.session.get(models.ReportLog, report_id)
            if log is None:
                return
            for key, value in values.items():
                setattr(log, key, value)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning(f"Error actualizando registro de reporte {report_id}: {e}")


def _snapshot(value):
    """JSON-safe copy of a record (dates as ISO strings)"""
    if isinstance(value, dict):
        return {key: _snapshot(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_snapshot(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _receipt_record(receipt: models.Receipt) -> Dict[str, Any]:
    return {
        'id': receipt.id,
        'sale_id': receipt.sale_id,
        'kind': receipt.kind,
        'series': receipt.series,
        'number': receipt.number,
        'issued_at': receipt.issued_at,
    }


class ReceiptRegister:
    """
    Register of issued receipts (comprobantes)

    A sale gets at most one receipt: issuing again for the same sale
    returns the record that already exists.
    """

    def find(self, sale_id: int) -> Optional[Dict[str, Any]]:
        try:
            receipt = models.Receipt.query.filter_by(sale_id=sale_id).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error consultando comprobantes: {e}")
            raise SourceFetchFailure(f'Error consultando comprobantes: {e}') from e
        return _receipt_record(receipt) if receipt else None

    def issue(self, sale: Dict[str, Any], items: List[Dict[str, Any]], kind: str, series: str,
              number: str, issued_at: Optional[datetime] = None) -> Dict[str, Any]:
        receipt = models.Receipt(
            sale_id=sale['id'],
            kind=kind,
            series=series,
            number=number,
            issued_at=issued_at or datetime.now(),
            data={'sale': _snapshot(sale), 'items': _snapshot(items)},
        )
        try:
            db.session.add(receipt)
            db.session.commit()
        except IntegrityError:
            # issued concurrently for the same sale
            db.session.rollback()
            existing = self.find(sale['id'])
            if existing is None:
                raise
            return existing
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info(f"Comprobante {series}-{number} emitido para la venta {sale['id']}")
        return _receipt_record(receipt)
