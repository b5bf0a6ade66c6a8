"""
Database URL handling and connectivity checks for the proficiency platform.
"""
import importlib.util
import logging
import time

from sqlalchemy import text


def normalize_pg_url_for_sqlalchemy(url: str) -> str:
    """Normalize a PostgreSQL URL for the installed SQLAlchemy driver.

    'postgres://' (Heroku style) becomes 'postgresql://', and a driver suffix
    is added for psycopg (v3) or psycopg2 when one is installed. Other URLs
    pass through untouched.
    """
    if not isinstance(url, str) or not url:
        return url
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    if not url.startswith('postgresql://'):
        return url
    for driver in ('psycopg', 'psycopg2'):
        if importlib.util.find_spec(driver) is not None:
            return url.replace('postgresql://', f'postgresql+{driver}://', 1)
    return url


def wait_for_db(engine, seconds: int = 20) -> bool:
    """Try to connect to the DB for up to `seconds`. Returns True if reachable, False otherwise."""
    start = time.time()
    last_err = None
    while time.time() - start < seconds:
        try:
            with engine.connect() as conn:
                conn.execute(text('SELECT 1'))
                return True
        except Exception as e:
            last_err = e
            time.sleep(1.0)
    if last_err:
        logging.warning(f"[DB WAIT] DB not reachable after {seconds}s: {last_err}")
    return False
