"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    JSON_SORT_KEYS = False

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Preferred URL scheme (for url_for with _external=True)
    PREFERRED_URL_SCHEME = os.getenv('PREFERRED_URL_SCHEME', 'http')

    # Authentication (JWT bearer tokens)
    JWT_SECRET = os.getenv('JWT_SECRET', SECRET_KEY)
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRATION_HOURS = int(os.getenv('JWT_EXPIRATION_HOURS', '24'))

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'ferremas')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'ferremas')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'ferremas')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Orders
    DEFAULT_CURRENCY = os.getenv('DEFAULT_CURRENCY', 'CLP')
    ORDER_TAX_RATE = os.getenv('ORDER_TAX_RATE', '0.19')  # IVA
    ORDER_DISCOUNT_RATE = os.getenv('ORDER_DISCOUNT_RATE', '0.05')
    ORDER_DISCOUNT_MIN_UNITS = int(os.getenv('ORDER_DISCOUNT_MIN_UNITS', '4'))  # discount when qty > this
    ORDER_NUMBER_MAX_ATTEMPTS = int(os.getenv('ORDER_NUMBER_MAX_ATTEMPTS', '3'))
    # 'strict': pending -> approved -> preparing -> ready -> delivered (+ cancelled)
    # 'permissive': any status from any non-terminal status
    ORDER_STATUS_POLICY = os.getenv('ORDER_STATUS_POLICY', 'strict')
    ORDERS_DEFAULT_PAGE_SIZE = int(os.getenv('ORDERS_DEFAULT_PAGE_SIZE', '20'))
    ORDERS_MAX_PAGE_SIZE = int(os.getenv('ORDERS_MAX_PAGE_SIZE', '100'))

    # Mercado Pago
    MP_ACCESS_TOKEN = os.getenv('MP_ACCESS_TOKEN') or os.getenv('MERCADOPAGO_ACCESS_TOKEN')
    MP_BASE_URL = os.getenv('MP_BASE_URL', 'https://api.mercadopago.com')
    MP_TIMEOUT = float(os.getenv('MP_TIMEOUT', '10'))
    MP_SANDBOX = os.getenv('MP_SANDBOX', 'true').lower() == 'true'
    MP_WEBHOOK_SECRET = os.getenv('MP_WEBHOOK_SECRET')
    MP_NOTIFICATION_URL = os.getenv('MP_NOTIFICATION_URL')
    MP_SUCCESS_URL = os.getenv('MP_SUCCESS_URL', 'http://localhost:3000/payment/success')
    MP_FAILURE_URL = os.getenv('MP_FAILURE_URL', 'http://localhost:3000/payment/failure')
    MP_PENDING_URL = os.getenv('MP_PENDING_URL', 'http://localhost:3000/payment/pending')

    # Currency conversion (Banco Central de Chile)
    BCN_API_URL = os.getenv('BCN_API_URL', 'https://si3.bcentral.cl/SieteRestWS/SieteRestWS.ashx')
    BCN_USER = os.getenv('BCN_USER')
    BCN_PASSWORD = os.getenv('BCN_PASSWORD')
    BCN_TIMEOUT = float(os.getenv('BCN_TIMEOUT', '10'))
    EXCHANGE_RATES_TTL = int(os.getenv('EXCHANGE_RATES_TTL', '3600'))  # seconds
    # Fallback table: CLP per unit of currency
    EXCHANGE_RATES_FALLBACK = {
        'CLP': '1.00',
        'USD': '900.50',
        'EUR': '980.75',
        'BRL': '175.30',
        'ARS': '1.05',
        'PEN': '240.80',
    }
