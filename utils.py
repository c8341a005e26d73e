"""
Utility functions for the pharmacy reporting system
Includes value formatting shared by every report, structured error logging
and company settings used on receipts
"""
import uuid
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any
from datetime import date, datetime
from flask import jsonify

# Configure logging
logger = logging.getLogger(__name__)

CURRENCY_LABEL = 'Bs.'
NOT_REGISTERED = 'No registrado'

DEFAULT_COMPANY_INFO = {
    'name': 'FARMACIA VIDA SANA',
    'tagline': 'Tel: (591) 99999999 | Oruro',
    'address': 'Av. Principal 123 - Oruro',
    'contact': 'Tel: (000) 000-000 | Email: contacto@farmaciavidasana.bo',
    'message': 'Gracias por su preferencia.',
    'logo': 'static/images/logo.png',
}

_TWO_PLACES = Decimal('0.01')


def generate_error_id() -> str:
    """
    Genera un ID único para rastreo de errores

    Returns:
        str: ID único en formato UUID corto (primeros 8 caracteres)
    """
    return str(uuid.uuid4())[:8].upper()


def log_error(error_type: str, message: str, error_id: str = None,
              context: Dict[str, Any] = None, exc_info: bool = False):
    """
    Logging centralizado de errores con contexto completo

    Args:
        error_type: Tipo de error ('validation', 'unsupported_kind', 'not_found', 'source_fetch', 'server')
        message: Mensaje descriptivo del error
        error_id: ID único del error (se genera automáticamente si no se proporciona)
        context: Contexto adicional (report_kind, sale_id, requested_by, etc.)
        exc_info: Si se debe incluir información de excepción
    """
    if error_id is None:
        error_id = generate_error_id()

    log_data = {
        'error_id': error_id,
        'error_type': error_type,
        'msg_detail': message,
    }

    if context:
        log_data.update(context)

    # Determinar nivel de log según tipo de error
    if error_type in ['validation', 'unsupported_kind', 'not_found']:
        logger.warning(f"[{error_id}] {message}", extra=log_data, exc_info=exc_info)
    else:  # source and server errors
        logger.error(f"[{error_id}] {message}", extra=log_data, exc_info=exc_info)


def log_success(operation: str, message: str, context: Dict[str, Any] = None):
    """
    Logging de operaciones exitosas

    Args:
        operation: Nombre de la operación (ej: 'report_generated', 'receipt_generated')
        message: Mensaje descriptivo del éxito
        context: Contexto adicional (report_kind, size, sale_id, etc.)
    """
    log_data = {
        'operation': operation,
        'msg_detail': message,
        'timestamp': datetime.utcnow().isoformat()
    }

    if context:
        log_data.update(context)

    logger.info(f"[SUCCESS] {operation}: {message}", extra=log_data)


def error_response(error_type: str, message: str, details: Optional[str] = None,
                   field: Optional[str] = None, status_code: int = 400,
                   log_context: Dict[str, Any] = None, **kwargs):
    """
    Genera una respuesta de error estandarizada para endpoints de API con logging automático

    Args:
        error_type: Tipo de error ('validation', 'unsupported_kind', 'not_found', 'source_fetch', 'server')
        message: Mensaje principal del error (breve y claro)
        details: Detalles adicionales del error (opcional)
        field: Campo que causó el error (opcional)
        status_code: Código HTTP de respuesta (default: 400)
        log_context: Contexto adicional para logging (report_kind, sale_id, etc.)
        **kwargs: Datos adicionales a incluir en la respuesta

    Returns:
        tuple: (jsonify response, status_code)

    Examples:
        >>> return error_response(
        ...     error_type='unsupported_kind',
        ...     message='tipoReporte no soportado',
        ...     field='tipoReporte',
        ...     log_context={'report_kind': 'ventas_semanales'}
        ... )
    """
    error_id = generate_error_id()

    log_error(
        error_type=error_type,
        message=message,
        error_id=error_id,
        context=log_context or {}
    )

    response_data = {
        'ok': False,
        'error': message,
        'type': error_type,
        'error_id': error_id,
        'timestamp': datetime.utcnow().isoformat()
    }

    if details:
        response_data['details'] = details

    if field:
        response_data['field'] = field

    response_data.update(kwargs)

    return jsonify(response_data), status_code


def sanitize_input(value: str, max_length: int = 255) -> str:
    """
    Sanitiza entrada de texto: recorta espacios y longitud máxima

    Args:
        value: Texto a sanitizar
        max_length: Longitud máxima permitida

    Returns:
        Texto limpio (cadena vacía si es None)
    """
    if value is None:
        return ''
    return str(value).strip()[:max_length]


# ----------- FORMATO DE VALORES -----------

def to_decimal(value: Any) -> Decimal:
    """Convert a numeric value (or numeric string) to Decimal; None counts as zero."""
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def format_money(value: Any) -> str:
    """
    Format a monetary quantity with exactly 2 decimals

    Rounding is half-up on the decimal representation, so the result does
    not depend on the binary float value or the process locale.

    Args:
        value: int, float, Decimal or numeric string

    Returns:
        Formatted amount, e.g. "25.00"
    """
    return str(to_decimal(value).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def format_currency(amount: Any) -> str:
    """
    Format currency with the fixed currency label (Bs.)

    Args:
        amount: The amount to format

    Returns:
        Formatted currency string
    """
    return f"{CURRENCY_LABEL} {format_money(amount)}"


def format_iso_date(value: Any) -> str:
    """ISO 8601 date (first 10 characters of the timestamp)."""
    if value is None:
        return ''
    if isinstance(value, (datetime, date)):
        return value.isoformat()[:10]
    return str(value)[:10]


def format_timestamp(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, datetime):
        return value.strftime('%Y-%m-%d %H:%M:%S')
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a datetime, date or ISO string (trailing Z accepted) into a naive datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    return parsed.replace(tzinfo=None)


def format_datetime_local(value: Any) -> str:
    """Human-facing date-time used on receipt headers (dd/mm/YYYY HH:MM:SS)."""
    moment = parse_timestamp(value)
    if moment is None:
        return ''
    return moment.strftime('%d/%m/%Y %H:%M:%S')


def format_cell(value: Any) -> str:
    """
    Display form of a report cell

    Integers print without decimals, floats and Decimals are treated as
    money (2 decimals), dates as ISO strings, None as an empty cell.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Sí' if value else 'No'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (float, Decimal)):
        return format_money(value)
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def format_receipt_number(sale_id: Any) -> str:
    """Receipt number: literal tag plus the sale id zero-padded to 6 digits."""
    return f"N° V-{str(sale_id).zfill(6)}"


def client_display_name(client: Optional[Dict[str, Any]]) -> str:
    """
    Resolve the display name of an embedded client record

    Returns the fixed "No registrado" label when the sale has no client or
    the client has neither first nor last name.
    """
    if not client:
        return NOT_REGISTERED
    name = f"{client.get('first_name') or ''} {client.get('last_name') or ''}".strip()
    return name or NOT_REGISTERED


def medicine_label(medicine: Optional[Dict[str, Any]], medicine_id: Any) -> str:
    """"{code} - {name}" of an embedded medicine, "#{id}" when the reference is missing."""
    if not medicine:
        return f"#{medicine_id}"
    return f"{medicine.get('code') or ''} - {medicine.get('name') or ''}"


# ----------- CONFIGURACIÓN DE EMPRESA -----------

COMPANY_SETTING_KEYS = {
    'company_name': 'name',
    'company_tagline': 'tagline',
    'company_address': 'address',
    'company_contact': 'contact',
    'receipt_message': 'message',
    'receipt_logo': 'logo',
}


def get_company_settings() -> Dict[str, Any]:
    """
    Get all company settings from SystemConfiguration

    Returns:
        Dict with company settings
    """
    from models import SystemConfiguration

    settings = {}

    try:
        for key in COMPANY_SETTING_KEYS:
            config = SystemConfiguration.query.filter_by(key=key).first()
            settings[key] = config.value if config else ''

        return {
            'success': True,
            'settings': settings
        }

    except Exception as e:
        logger.warning(f"No se pudieron leer las configuraciones de empresa: {e}")
        return {
            'success': False,
            'message': f'Error al obtener configuraciones: {str(e)}',
            'settings': {}
        }


def update_company_setting(key: str, value: str) -> Dict[str, Any]:
    """
    Update a specific company setting

    Args:
        key: Setting key to update
        value: New value for the setting

    Returns:
        Dict with update status
    """
    from models import SystemConfiguration, db

    if key not in COMPANY_SETTING_KEYS:
        return {
            'success': False,
            'message': f'Configuración desconocida: {key}'
        }

    value = sanitize_input(value)

    try:
        setting = SystemConfiguration.query.filter_by(key=key).first()

        if setting:
            setting.value = value
        else:
            setting = SystemConfiguration()
            setting.key = key
            setting.value = value
            setting.description = f'Configuración: {key}'
            db.session.add(setting)

        db.session.commit()

        return {
            'success': True,
            'message': f'Configuración {key} actualizada correctamente'
        }

    except Exception as e:
        db.session.rollback()
        return {
            'success': False,
            'message': f'Error al actualizar configuración: {str(e)}'
        }


def get_company_info_for_receipt() -> Dict[str, str]:
    """
    Get company information for receipt and report generation

    Returns:
        Dict with company branding lines; defaults fill any missing setting
    """
    company_data = get_company_settings()

    if not company_data['success']:
        return dict(DEFAULT_COMPANY_INFO)

    settings = company_data['settings']
    info = dict(DEFAULT_COMPANY_INFO)
    for db_key, info_key in COMPANY_SETTING_KEYS.items():
        if settings.get(db_key):
            info[info_key] = settings[db_key]
    return info


def logo_file_path(logo_url: Optional[str]) -> Optional[str]:
    """
    Convert the receipt_logo setting (a web path like /static/logo.png)
    into a path relative to the app root
    """
    if not logo_url:
        return None
    return logo_url.lstrip('/')


def load_logo_bytes(path: Optional[str]) -> Optional[bytes]:
    """
    Read the logo file if it exists

    The path is used as given, absolute or relative to the working
    directory. A missing or unreadable file is not an error: reports are
    generated without a logo.
    """
    if not path:
        return None
    try:
        with open(path, 'rb') as fh:
            return fh.read()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning(f"No se pudo leer el logo {path}: {e}")
        return None
