"""
Configuration file for the Disaster Response Hub backend.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    return os.getenv(name, default).lower() == 'true'


class Config:
    """Base configuration"""
    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = _env_bool('DEBUG', 'True')
    TESTING = False
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024  # 10 MB
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # CORS
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000,http://localhost:5173').split(',')

    # Rate Limiting (Flask-Limiter reads the RATELIMIT_* keys)
    RATELIMIT_ENABLED = _env_bool('RATE_LIMIT_ENABLED', 'True')
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL', 'memory://')
    RATELIMIT_DEFAULT = os.getenv('RATE_LIMIT_DEFAULT', '1000 per hour')
    AI_RATE_LIMIT = os.getenv('AI_RATE_LIMIT', '30 per minute')

    # AI providers
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
    GEMINI_API_KEY = os.getenv('GEMINI_API_KEY')
    GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.0-flash')
    AI_TIMEOUT_SECONDS = float(os.getenv('AI_TIMEOUT_SECONDS', '10'))

    # Geocoding providers
    GOOGLE_MAPS_API_KEY = os.getenv('GOOGLE_MAPS_API_KEY')
    MAPBOX_API_KEY = os.getenv('MAPBOX_API_KEY')
    GEOCODING_TIMEOUT_SECONDS = float(os.getenv('GEOCODING_TIMEOUT_SECONDS', '5'))

    # Location extraction: 'india' or 'us' gazetteer
    LOCATION_GAZETTEER = os.getenv('LOCATION_GAZETTEER', 'india')

    # Cache TTLs (minutes)
    LOCATION_CACHE_TTL_MINUTES = float(os.getenv('LOCATION_CACHE_TTL_MINUTES', '60'))
    GEOCODE_CACHE_TTL_MINUTES = float(os.getenv('GEOCODE_CACHE_TTL_MINUTES', '60'))
    IMAGE_VERIFY_CACHE_TTL_MINUTES = float(os.getenv('IMAGE_VERIFY_CACHE_TTL_MINUTES', '60'))
    CACHE_SWEEP_THRESHOLD = int(os.getenv('CACHE_SWEEP_THRESHOLD', '1000'))

    # Live feeds
    SOCIAL_MEDIA_MONITORING = _env_bool('SOCIAL_MEDIA_MONITORING', 'True')
    SOCIAL_MEDIA_POLL_SECONDS = float(os.getenv('SOCIAL_MEDIA_POLL_SECONDS', '30'))
    OFFICIAL_UPDATES_FEED_URL = os.getenv('OFFICIAL_UPDATES_FEED_URL')
    OFFICIAL_UPDATES_TIMEOUT_SECONDS = float(os.getenv('OFFICIAL_UPDATES_TIMEOUT_SECONDS', '10'))

    # Seed the resource index with the default relief centres
    SEED_RESOURCES = True

    # Mock identity until real authentication exists
    MOCK_USER_ID = os.getenv('MOCK_USER_ID', 'netrunnerX')
    MOCK_USER_ROLE = os.getenv('MOCK_USER_ROLE', 'admin')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Test configuration: no background threads, rate limits or real providers"""
    TESTING = True
    DEBUG = False
    RATELIMIT_ENABLED = False
    SOCIAL_MEDIA_MONITORING = False
    SEED_RESOURCES = False
    OPENAI_API_KEY = None
    GEMINI_API_KEY = None
    GOOGLE_MAPS_API_KEY = None
    MAPBOX_API_KEY = None
    OFFICIAL_UPDATES_FEED_URL = None
    MOCK_USER_ID = 'netrunnerX'
    MOCK_USER_ROLE = 'admin'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
