import os
import logging
from logging.handlers import RotatingFileHandler
import sys

from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.middleware.proxy_fix import ProxyFix

# Configure logging with rotation
def setup_logging():
    """
    Configura logging centralizado con rotación de archivos

    Niveles de log:
    - DEBUG: Información detallada para debugging
    - INFO: Reportes y comprobantes generados
    - WARNING: Solicitudes inválidas, logo ausente, auditoría no disponible
    - ERROR: Fallos de la fuente de datos y errores inesperados
    """
    # Crear directorio de logs si no existe
    log_dir = 'logs'
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    # Configurar formato de log detallado
    log_format = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s:%(lineno)d] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Handler para archivo con rotación (10 MB por archivo, mantener 10 archivos)
    file_handler = RotatingFileHandler(
        filename=os.path.join(log_dir, 'reportes_app.log'),
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=10,
        encoding='utf-8'
    )
    file_handler.setFormatter(log_format)
    file_handler.setLevel(logging.INFO)

    # Handler para archivo de errores separado
    error_handler = RotatingFileHandler(
        filename=os.path.join(log_dir, 'reportes_errors.log'),
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=10,
        encoding='utf-8'
    )
    error_handler.setFormatter(log_format)
    error_handler.setLevel(logging.ERROR)

    # Handler para consola
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_format)
    console_handler.setLevel(logging.DEBUG if os.environ.get("ENVIRONMENT") != "production" else logging.INFO)

    # Configurar logger raíz
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Limpiar handlers existentes
    root_logger.handlers.clear()

    root_logger.addHandler(file_handler)
    root_logger.addHandler(error_handler)
    root_logger.addHandler(console_handler)

    # Reducir verbosidad de librerías externas
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.INFO)

    logging.info("Sistema de logging configurado correctamente")

# Inicializar logging al arrancar la aplicación
setup_logging()

# create the app
app = Flask(__name__)

# Add ProxyFix middleware for proper reverse proxy handling
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)
# setup a secret key, required by sessions and CSRF - MUST be set in production
app.secret_key = os.environ.get("SESSION_SECRET")
if not app.secret_key:
    if os.environ.get("ENVIRONMENT") == "production":
        raise RuntimeError("SESSION_SECRET environment variable must be set in production")
    else:
        app.secret_key = "dev-secret-key-change-in-production"

# CSRF protection; API clients send the token in the X-CSRFToken header
csrf = CSRFProtect(app)
app.config['WTF_CSRF_TIME_LIMIT'] = 3600  # 1 hour token lifetime

# Rate limiting configuration
app.config['RATELIMIT_ENABLED'] = os.environ.get("RATELIMIT_ENABLED", "true").lower() != "false"
limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=["100 per hour"],  # Default rate limit for all routes
    storage_uri="memory://"  # Use memory storage for rate limiting
)

# configure the database
app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", "sqlite:///farmacia.db")
if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }

# Logo used on report title blocks and receipts
app.config['REPORT_LOGO_PATH'] = os.environ.get("REPORT_LOGO_PATH", "static/images/logo.png")

# Import models and get db instance
import models  # noqa: F401
from models import db

# initialize the app with the extension, flask-sqlalchemy >= 3.0.x
db.init_app(app)

# Import routes after app initialization
from routes import api

# Report and receipt generation is expensive: tighter limit on the API
limiter.limit("20 per minute")(api.bp)

# Register blueprints
app.register_blueprint(api.bp)


@app.route('/health')
@limiter.exempt
def health():
    """Health check for the deployment platform"""
    return jsonify({'status': 'ok'}), 200


@app.after_request
def add_security_headers(response):
    """Add security headers for production"""

    # Only add security headers in production
    if os.environ.get("ENVIRONMENT") == "production":
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

    # Generated documents must never be cached
    if request.endpoint != 'static':
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
        response.headers['Pragma'] = 'no-cache'
        response.headers['Expires'] = '0'
    return response


# Run the application in development mode
if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5000, debug=True)
