import os
import tempfile

from cachelib.file import FileSystemCache
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default='false'):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def _database_url():
    db_url = os.environ.get('DATABASE_URL', 'sqlite:///moviebooking.db')
    if db_url.startswith('postgres://'):
        db_url = db_url.replace('postgres://', 'postgresql://', 1)
    return db_url


# Cache timeout constants
CACHE_TIMEOUT_CATALOG = 300  # movies and theaters listings, 5 minutes
CACHE_TIMEOUT_SEATS = 60     # seat map of a single showtime, 1 minute


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'super-secret-key-change-in-production')

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Server-side sessions stored as files through cachelib
    SESSION_TYPE = 'cachelib'
    SESSION_CACHELIB = FileSystemCache(
        os.environ.get('SESSION_DIR', os.path.join(os.getcwd(), 'flask_session')),
        threshold=500,
    )
    SESSION_PERMANENT = False
    SESSION_COOKIE_SAMESITE = os.environ.get('SESSION_COOKIE_SAMESITE', 'Lax')
    SESSION_COOKIE_SECURE = _env_flag('SESSION_COOKIE_SECURE')

    CACHE_TYPE = os.environ.get('CACHE_TYPE', 'SimpleCache')
    CACHE_DEFAULT_TIMEOUT = int(os.environ.get('CACHE_DEFAULT_TIMEOUT', 300))

    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]

    ADMIN_TOKEN_MAX_AGE = int(os.environ.get('ADMIN_TOKEN_MAX_AGE', 60 * 60 * 24))
    SHOWTIME_DAYS = int(os.environ.get('SHOWTIME_DAYS', 14))

    SEED_DATA = _env_flag('SEED_DATA')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SESSION_CACHELIB = FileSystemCache(os.path.join(tempfile.gettempdir(), 'moviebooking-test-sessions'))
    SESSION_COOKIE_SECURE = False
    CACHE_TYPE = 'SimpleCache'
    CORS_ORIGINS = ['*']
    SEED_DATA = False
    LOG_LEVEL = 'DEBUG'
