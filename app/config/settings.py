# app/config/settings.py
# Runtime configuration for the workflow service

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


class WorkflowConfig:
    """Environment driven configuration for the application"""

    # Database settings
    DATABASE = {
        'url': os.getenv('DATABASE_URL', 'sqlite:///./taskflow.db'),
        'sslmode': os.getenv('DB_SSLMODE', 'require'),
        'echo': os.getenv('SQL_ECHO', 'false').lower() == 'true',
    }

    # Bearer token settings (tokens are issued by the auth service)
    AUTH = {
        'secret_key': os.getenv('SECRET_KEY', 'change-me'),
        'algorithm': os.getenv('ALGORITHM', 'HS256'),
    }

    # Logging
    LOGGING = {
        'level': os.getenv('LOG_LEVEL', 'INFO').upper(),
    }

    # Side effects that never gate a lifecycle operation
    SIDE_EFFECTS = {
        'activity_log_enabled': os.getenv('ACTIVITY_LOG_ENABLED', 'true').lower() == 'true',
        'notifications_enabled': os.getenv('NOTIFICATIONS_ENABLED', 'true').lower() == 'true',
    }

    # Server settings used by start_server.py
    SERVER = {
        'host': os.getenv('HOST', '0.0.0.0'),
        'port': int(os.getenv('PORT', '8000')),
        'reload': os.getenv('RELOAD', 'true').lower() == 'true',
    }

    DEFAULT_CORS_ORIGINS = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    @classmethod
    def get_cors_origins(cls) -> List[str]:
        """Get allowed CORS origins from CORS_ORIGINS or fall back to local dev hosts"""
        raw = os.getenv('CORS_ORIGINS')
        if not raw:
            return list(cls.DEFAULT_CORS_ORIGINS)
        return [origin.strip() for origin in raw.split(',') if origin.strip()]

    @classmethod
    def is_postgres(cls) -> bool:
        """Check if the configured database is PostgreSQL"""
        return cls.DATABASE['url'].startswith(('postgresql', 'postgres'))

    @classmethod
    def get_connect_args(cls) -> dict:
        """Get driver connect args for the configured database"""
        if cls.is_postgres():
            return {"sslmode": cls.DATABASE['sslmode']}
        if cls.DATABASE['url'].startswith('sqlite'):
            return {"check_same_thread": False}
        return {}
