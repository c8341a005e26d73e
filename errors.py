"""
Error taxonomy for report and receipt generation
"""
from typing import Any, Dict


class ReportError(Exception):
    """Base class; carries the error type reported to API callers."""
    error_type = 'server'
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.error_type, 'error': self.message}


class InvalidRequest(ReportError):
    """Malformed dates, threshold or format in a report payload."""
    error_type = 'validation'
    status_code = 400

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class UnsupportedKind(ReportError):
    error_type = 'unsupported_kind'
    status_code = 400

    def __init__(self, kind: Any):
        super().__init__(f'tipoReporte no soportado: {kind}')
        self.kind = kind


class SourceFetchFailure(ReportError):
    """The record source failed; never retried here."""
    error_type = 'source_fetch'
    status_code = 500


class AssetDecodeFailure(ReportError):
    """Logo bytes present but not decodable. Renderers recover from it."""
    error_type = 'asset_decode'
