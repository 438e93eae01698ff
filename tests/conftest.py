"""
Shared fixtures for the polykv test suite.

Networked engines (PostgreSQL, MySQL) are only exercised when a server is
reachable at the URL given by the environment; those tests skip otherwise.
"""

import os

import pytest
from sqlalchemy import create_engine, text

from polykv.security import SecretCipher

# PBKDF2 at production strength would dominate the test run time
TEST_KDF_ITERATIONS = 1_000
TEST_SECRET = "correct horse battery staple"


# ==================== Environment Configuration ====================


def get_postgres_url() -> str:
    """Get PostgreSQL connection URL from environment."""
    user = os.getenv("POSTGRES_USER", "polykv")
    password = os.getenv("POSTGRES_PASSWORD", "polykv_dev_password")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "polykv_test")
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


def get_mysql_url() -> str:
    """Get MySQL connection URL from environment."""
    user = os.getenv("MYSQL_USER", "polykv")
    password = os.getenv("MYSQL_PASSWORD", "polykv_dev_password")
    host = os.getenv("MYSQL_HOST", "localhost")
    port = os.getenv("MYSQL_PORT", "3306")
    db = os.getenv("MYSQL_DB", "polykv_test")
    return f"mysql://{user}:{password}@{host}:{port}/{db}"


def _server_reachable(url: str) -> bool:
    try:
        engine = create_engine(url, connect_args={"connect_timeout": 2})
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        finally:
            engine.dispose()
        return True
    except Exception:
        return False


# ==================== Server Fixtures ====================


@pytest.fixture(scope="session")
def postgres_url() -> str:
    """PostgreSQL URL, skipping the test when the server is unreachable."""
    from polykv.storage.backends.sql_backend import PSYCOPG_AVAILABLE, PSYCOPG_DIALECT

    if not PSYCOPG_AVAILABLE:
        pytest.skip("psycopg not installed")
    url = get_postgres_url()
    if not _server_reachable(PSYCOPG_DIALECT + url[len("postgresql"):]):
        pytest.skip("PostgreSQL not available")
    return url


@pytest.fixture(scope="session")
def mysql_url() -> str:
    """MySQL URL, skipping the test when the server is unreachable."""
    from polykv.storage.backends.sql_backend import PYMYSQL_AVAILABLE

    if not PYMYSQL_AVAILABLE:
        pytest.skip("pymysql not installed")
    url = get_mysql_url()
    if not _server_reachable("mysql+pymysql" + url[len("mysql"):]):
        pytest.skip("MySQL not available")
    return url


# ==================== Security Fixtures ====================


@pytest.fixture
def cipher() -> SecretCipher:
    """A cipher with a test-strength key derivation."""
    return SecretCipher(TEST_SECRET, kdf_iterations=TEST_KDF_ITERATIONS)


@pytest.fixture
def fast_kdf_overrides() -> dict:
    """Flat Database overrides for an encrypted store with a cheap KDF."""
    return {"secret": TEST_SECRET, "kdf_iterations": TEST_KDF_ITERATIONS}
