"""
Root-level conftest for all tests.

Settings are read from the environment the first time get_settings() is
called, and some modules call it at import time, so provide defaults
before anything from feedcycle is imported.
"""
import os

_DEFAULT_ENV = {
    "DIRECTORY_URL": "http://directory.test",
    "SERVICE_TOKEN_SECRET": "unit-test-service-secret",
    "POSTGRES_USER": "unit_test_user",
    "POSTGRES_HOST": "localhost",
    "POSTGRES_PASSWORD": "unit_test_password",
    "POSTGRES_PORT": "5432",
    "POSTGRES_DB": "unit_test_db",
    "REDIS_HOST": "localhost",
    "REDIS_PORT": "6379",
    "JSON_LOGS": "true",
}

for _key, _value in _DEFAULT_ENV.items():
    os.environ.setdefault(_key, _value)
