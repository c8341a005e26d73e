from flask import Blueprint, request, send_file, current_app
from io import BytesIO
import logging

from errors import InvalidRequest, ReportError
from receipt_generator import generate_pdf_receipt
from record_source import SqlRecordSource, ReportAudit, ReceiptRegister
from reports import ReportRequest, generate_report
from utils import (
    error_response, get_company_info_for_receipt, load_logo_bytes, log_success, logo_file_path, sanitize_input,
)

# Configure logging
logger = logging.getLogger(__name__)

bp = Blueprint('api', __name__, url_prefix='/api')


# HEAD handlers to prevent log spam from monitoring services
@bp.route('', methods=['HEAD'])
@bp.route('/', methods=['HEAD'])
def api_head():
    """Handle HEAD requests to /api and /api/ - likely from monitoring service"""
    return '', 200


def _report_logo(company_info=None):
    """Logo configured for the app, falling back to the receipt_logo setting"""
    logo = load_logo_bytes(current_app.config.get('REPORT_LOGO_PATH'))
    if logo is None and company_info:
        # the setting holds a web path, e.g. /static/images/logo.png
        logo = load_logo_bytes(logo_file_path(company_info.get('logo')))
    return logo


def _report_error_response(error: ReportError, log_context):
    return error_response(
        error_type=error.error_type,
        message=error.message,
        field=getattr(error, 'field', None),
        status_code=error.status_code,
        log_context=log_context,
    )


@bp.route('/reports', methods=['POST'])
def create_report():
    """
    Generate a report file

    Body JSON: tipoReporte, fechaInicio, fechaFin, formato (PDF|CSV),
    threshold, userId. Responds with the file as an attachment.
    """
    payload = request.get_json(silent=True) or {}
    log_context = {'report_kind': payload.get('tipoReporte') if isinstance(payload, dict) else None}

    try:
        report_request = ReportRequest.from_payload(payload)
        log_context['requested_by'] = report_request.requested_by

        report = generate_report(
            report_request,
            SqlRecordSource(),
            audit=ReportAudit(),
            logo=_report_logo(),
        )
    except ReportError as e:
        return _report_error_response(e, log_context)
    except Exception as e:
        logger.error(f'Error inesperado generando reporte: {str(e)}', exc_info=True)
        return error_response(
            error_type='server',
            message='Error interno al generar el reporte',
            status_code=500,
            log_context=log_context,
        )

    return send_file(
        BytesIO(report.content),
        as_attachment=True,
        download_name=report.filename,
        mimetype=report.mimetype
    )


# tipo/serie/numero of the body: (field, record key, max length)
RECEIPT_NUMBERING_FIELDS = (('tipo', 'kind', 20), ('serie', 'series', 10), ('numero', 'number', 20))


def _receipt_numbering(payload, sale_id):
    """
    Read tipo, serie and numero from the receipt request body

    Defaults: FACTURA, F001 and the sale id zero-padded to 6 digits.
    """
    if not isinstance(payload, dict):
        raise InvalidRequest('El cuerpo de la solicitud debe ser un objeto JSON')

    defaults = {'tipo': 'FACTURA', 'serie': 'F001', 'numero': str(sale_id).zfill(6)}
    numbering = {}
    for field, key, max_length in RECEIPT_NUMBERING_FIELDS:
        value = payload.get(field)
        if value is None:
            value = defaults[field]
        if isinstance(value, (bool, dict, list)):
            raise InvalidRequest(f'{field} inválido', field=field)
        value = sanitize_input(value, max_length + 1)
        if not value or len(value) > max_length:
            raise InvalidRequest(f'{field} debe tener entre 1 y {max_length} caracteres', field=field)
        numbering[key] = value
    return numbering


@bp.route('/receipts/<int:sale_id>', methods=['POST'])
def create_receipt(sale_id):
    """
    Generate the PDF receipt of a sale

    Body JSON (optional): tipo, serie, numero. The first request for a sale
    registers the receipt; later requests reuse that record.
    """
    payload = request.get_json(silent=True)
    log_context = {'sale_id': sale_id}
    source = SqlRecordSource()
    register = ReceiptRegister()

    try:
        numbering = _receipt_numbering(payload if payload is not None else {}, sale_id)

        sale = source.fetch_sale(sale_id)
        if not sale:
            return error_response(
                error_type='not_found',
                message='Venta no encontrada',
                status_code=404,
                log_context=log_context,
            )

        items = source.fetch_sale_items([sale_id])
        receipt = register.find(sale_id)
        reused = receipt is not None

        company_info = get_company_info_for_receipt()
        pdf_bytes = generate_pdf_receipt(sale, items, logo=_report_logo(company_info), company_info=company_info)

        if receipt is None:
            receipt = register.issue(sale, items, **numbering)
    except ReportError as e:
        return _report_error_response(e, log_context)
    except Exception as e:
        logger.error(f'Error inesperado generando comprobante: {str(e)}', exc_info=True)
        return error_response(
            error_type='server',
            message='Error interno al generar el comprobante',
            status_code=500,
            log_context=log_context,
        )

    log_success('receipt_generated', f"Comprobante {receipt['series']}-{receipt['number']} de la venta {sale_id}", {
        'sale_id': sale_id,
        'receipt_id': receipt['id'],
        'reused': reused,
        'size': len(pdf_bytes),
        'items': len(items),
    })

    response = send_file(
        BytesIO(pdf_bytes),
        as_attachment=True,
        download_name=f"comprobante-{sale_id}.pdf",
        mimetype='application/pdf'
    )
    response.headers['X-Comprobante-Id'] = str(receipt['id'])
    response.headers['X-Comprobante-Tipo'] = receipt['kind']
    response.headers['X-Comprobante-Numero'] = f"{receipt['series']}-{receipt['number']}"
    return response
