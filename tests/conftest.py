"""
Fixtures compartidos: fuente de datos en memoria con una farmacia pequeña
"""
import io
from datetime import date, datetime

import pytest
from PIL import Image

from record_source import RecordSource


class InMemoryRecordSource(RecordSource):
    """RecordSource over plain lists, same filtering and ordering rules as the SQL one."""

    def __init__(self, clients=(), medicines=(), sales=(), items=(), entries=(), exits=()):
        self.clients = {c['id']: c for c in clients}
        self.medicines = list(medicines)
        self.sales = list(sales)
        self.items = list(items)
        self.entries = list(entries)
        self.exits = list(exits)
        self.calls = []

    @staticmethod
    def _in_window(moment, start, end):
        if start is not None and moment < start:
            return False
        if end is not None and moment > end:
            return False
        return True

    def _medicine_ref(self, medicine_id):
        for medicine in self.medicines:
            if medicine['id'] == medicine_id:
                return {'code': medicine['code'], 'name': medicine['name']}
        return None

    def _with_client(self, sale):
        return dict(sale, client=self.clients.get(sale.get('client_id')))

    def fetch_sales(self, start=None, end=None):
        self.calls.append(('fetch_sales', start, end))
        sales = [self._with_client(s) for s in self.sales if self._in_window(s['sale_date'], start, end)]
        return sorted(sales, key=lambda s: s['id'], reverse=True)

    def fetch_sale(self, sale_id):
        self.calls.append(('fetch_sale', sale_id))
        for sale in self.sales:
            if sale['id'] == sale_id:
                return self._with_client(sale)
        return None

    def fetch_sale_items(self, sale_ids):
        ids = set(sale_ids)
        self.calls.append(('fetch_sale_items', sorted(ids)))
        return [dict(item, medicine=self._medicine_ref(item['medicine_id']))
                for item in self.items if item['sale_id'] in ids]

    def fetch_medicines(self, expiry_from=None, expiry_to=None):
        self.calls.append(('fetch_medicines', expiry_from, expiry_to))
        result = []
        for medicine in self.medicines:
            expiry = medicine.get('expiry_date')
            if (expiry_from is not None or expiry_to is not None) and expiry is None:
                continue
            if expiry_from is not None and expiry < expiry_from:
                continue
            if expiry_to is not None and expiry > expiry_to:
                continue
            result.append(dict(medicine))
        return result

    def fetch_stock_entries(self, start=None, end=None):
        self.calls.append(('fetch_stock_entries', start, end))
        return [dict(e, medicine=self._medicine_ref(e['medicine_id']))
                for e in self.entries if self._in_window(e['entry_date'], start, end)]

    def fetch_stock_exits(self, start=None, end=None):
        self.calls.append(('fetch_stock_exits', start, end))
        return [dict(x, medicine=self._medicine_ref(x['medicine_id']))
                for x in self.exits if self._in_window(x['exit_date'], start, end)]


class RecordingAudit:
    """ReportAudit stand-in that remembers every transition"""

    def __init__(self, report_id=7):
        self.report_id = report_id
        self.events = []

    def open(self, request):
        self.events.append(('open', request.kind_value))
        return self.report_id

    def mark_generated(self, report_id, size, notes='descarga directa'):
        self.events.append(('generated', report_id, size))

    def mark_error(self, report_id, note):
        self.events.append(('error', report_id, note))


def _medicine(id, code, name, stock, min_stock, sale_price, expiry_date):
    return {
        'id': id, 'code': code, 'name': name, 'description': None,
        'expiry_date': expiry_date, 'stock': stock, 'min_stock': min_stock,
        'purchase_price': 0.0, 'sale_price': sale_price, 'status': 'ACTIVO',
    }


def _sale(id, client_id, sale_date, total):
    return {'id': id, 'client_id': client_id, 'user_id': 'admin', 'sale_date': sale_date,
            'total': total, 'status': 'completada'}


def _item(id, sale_id, medicine_id, quantity, unit_price, subtotal):
    return {'id': id, 'sale_id': sale_id, 'medicine_id': medicine_id, 'quantity': quantity,
            'unit_price': unit_price, 'subtotal': subtotal}


@pytest.fixture
def pharmacy_source():
    """
    Fixture de farmacia

    Ventas 1-5 caen entre 2024-03-01 y 2024-03-03 (la 4 a las 23:59:59.5),
    la venta 6 queda fuera. La venta 2 no tiene cliente y la 5 tiene un
    cliente sin nombre. El item 4 apunta a un medicamento inexistente (99).
    """
    clients = [
        {'id': 1, 'first_name': 'Ana', 'last_name': 'Quispe', 'ci': '4455667'},
        {'id': 2, 'first_name': 'Luis', 'last_name': 'Mamani', 'ci': '5566778'},
        {'id': 3, 'first_name': '', 'last_name': None, 'ci': None},
    ]
    medicines = [
        _medicine(1, 'PAR500', 'Paracetamol 500mg', 120, 30, 0.6, date(2024, 6, 1)),
        _medicine(2, 'IBU400', 'Ibuprofeno 400mg', 12, 25, 0.9, date(2024, 3, 10)),
        _medicine(3, 'AMX500', 'Amoxicilina 500mg', 11, 20, 1.8, date(2024, 3, 25)),
        _medicine(4, 'LOR10', 'Loratadina 10mg', 45, 10, 0.75, date(2024, 3, 5)),
        _medicine(5, 'OME20', 'Omeprazol 20mg', 0, 15, 1.4, date(2025, 1, 1)),
        _medicine(6, 'VITC', 'Vitamina C', 5, None, 0.25, None),
    ]
    sales = [
        _sale(1, 1, datetime(2024, 3, 1, 10, 0), 7.80),
        _sale(2, None, datetime(2024, 3, 1, 15, 30), 5.50),
        _sale(3, 2, datetime(2024, 3, 2, 9, 0), 21.00),
        _sale(4, 1, datetime(2024, 3, 3, 23, 59, 59, 500000), 4.75),
        _sale(5, 3, datetime(2024, 3, 3, 12, 0), 0.60),
        _sale(6, 2, datetime(2024, 2, 20, 8, 0), 3.00),
    ]
    items = [
        _item(1, 1, 1, 10, 0.6, 6.00),
        _item(2, 1, 2, 2, 0.9, 1.80),
        _item(3, 2, 4, 2, 0.75, 1.50),
        _item(4, 2, 99, 1, 4.00, 4.00),
        _item(5, 3, 3, 5, 1.8, 9.00),
        _item(6, 3, 1, 20, 0.6, 12.00),
        _item(7, 4, 2, 5, 0.95, 4.75),
        _item(8, 5, 1, 1, 0.6, 0.60),
        _item(9, 6, 1, 5, 0.6, 3.00),
    ]
    entries = [
        {'id': 1, 'medicine_id': 1, 'quantity': 100, 'entry_date': datetime(2024, 3, 1, 8, 0),
         'unit_cost': 0.35, 'notes': 'Compra, lote "A"'},
        {'id': 2, 'medicine_id': 3, 'quantity': 30, 'entry_date': datetime(2024, 3, 2, 11, 0),
         'unit_cost': 1.10, 'notes': None},
        {'id': 3, 'medicine_id': 1, 'quantity': 50, 'entry_date': datetime(2024, 2, 10, 9, 0),
         'unit_cost': 0.35, 'notes': None},
    ]
    exits = [
        {'id': 1, 'medicine_id': 4, 'quantity': 5, 'exit_date': datetime(2024, 3, 2, 16, 0),
         'reason': 'VENCIMIENTO'},
        {'id': 2, 'medicine_id': 42, 'quantity': 1, 'exit_date': datetime(2024, 3, 3, 10, 0),
         'reason': 'AJUSTE'},
    ]
    return InMemoryRecordSource(clients, medicines, sales, items, entries, exits)


@pytest.fixture
def recording_audit():
    return RecordingAudit()


@pytest.fixture
def png_logo():
    """Logo PNG real de 120x60 generado con Pillow"""
    buffer = io.BytesIO()
    Image.new('RGB', (120, 60), (15, 115, 190)).save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def empty_source():
    return InMemoryRecordSource()
