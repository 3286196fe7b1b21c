import os
from datetime import timedelta

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
load_dotenv(os.path.join(basedir, '.env'))


def _int_env(name, default):
    return int(os.environ.get(name, default))


class Config:
    """Base configuration"""

    # Security Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    @staticmethod
    def get_database_url():
        """Get properly formatted database URL string"""
        database_url = os.environ.get('DATABASE_URL')

        if database_url:
            # SQLAlchemy only understands postgresql://
            if database_url.startswith('postgres://'):
                database_url = database_url.replace('postgres://', 'postgresql://', 1)
            return database_url
        return 'sqlite:///' + os.path.join(basedir, 'bikeshop.db')

    SQLALCHEMY_DATABASE_URI = None  # Set in __init__
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_recycle': 3600,
        'pool_pre_ping': True,
    }

    # Session Configuration
    PERMANENT_SESSION_LIFETIME = timedelta(hours=24)
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'None'
    SESSION_COOKIE_NAME = 'bikeshop_auth'

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000').split(',')
        if origin.strip()
    ]
    CORS_SUPPORTS_CREDENTIALS = True

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # --- Business Settings ---
    SHOP_TIMEZONE = os.environ.get('SHOP_TIMEZONE', 'America/Los_Angeles')
    DEFAULT_QUOTATION_VALIDITY_DAYS = _int_env('DEFAULT_QUOTATION_VALIDITY_DAYS', 30)
    DEFAULT_INVOICE_DUE_DAYS = _int_env('DEFAULT_INVOICE_DUE_DAYS', 30)
    QUOTATION_EXPIRING_SOON_DAYS = _int_env('QUOTATION_EXPIRING_SOON_DAYS', 3)
    INVOICE_DUE_SOON_DAYS = _int_env('INVOICE_DUE_SOON_DAYS', 7)
    DOCUMENT_NUMBER_MAX_ATTEMPTS = _int_env('DOCUMENT_NUMBER_MAX_ATTEMPTS', 5)
    MAX_PAGE_SIZE = _int_env('MAX_PAGE_SIZE', 100)

    def __init__(self):
        self.SQLALCHEMY_DATABASE_URI = self.get_database_url()


class DevelopmentConfig(Config):
    """Development configuration for local testing"""
    DEBUG = True
    DEVELOPMENT = True

    def __init__(self):
        super().__init__()

        # Relaxed cookies over plain http
        self.SESSION_COOKIE_SECURE = False
        self.SESSION_COOKIE_SAMESITE = 'Lax'

        dev_database_url = os.environ.get('DEV_DATABASE_URL')
        if dev_database_url:
            if dev_database_url.startswith('postgres://'):
                dev_database_url = dev_database_url.replace('postgres://', 'postgresql://', 1)
            self.SQLALCHEMY_DATABASE_URI = dev_database_url


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    DEVELOPMENT = False

    def __init__(self):
        super().__init__()

        secret_key = os.environ.get('SECRET_KEY')
        if not secret_key:
            raise ValueError("SECRET_KEY environment variable is required for production")
        self.SECRET_KEY = secret_key

        if not os.environ.get('DATABASE_URL'):
            raise ValueError("DATABASE_URL environment variable is required for production")

        self.SQLALCHEMY_ENGINE_OPTIONS = {
            'pool_recycle': 3600,
            'pool_pre_ping': True,
            'pool_size': 20,
            'max_overflow': 30,
            'pool_timeout': 60,
        }


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    # FlaskLoginClient sessions carry no identifier
    SESSION_PROTECTION = None
    SHOP_TIMEZONE = 'America/Los_Angeles'

    def __init__(self):
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.SESSION_COOKIE_SECURE = False
        self.CORS_ORIGINS = ['*']


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config_name():
    """Pick the configuration from the environment"""

    flask_env = os.environ.get('FLASK_ENV', '').lower()
    if flask_env in ['production', 'testing', 'development']:
        return flask_env

    if os.environ.get('TESTING') or os.environ.get('CI'):
        return 'testing'

    return 'development'


__all__ = [
    'config',
    'get_config_name',
]
