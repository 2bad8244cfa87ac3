import os
import threading

from dotenv import load_dotenv
from sqlalchemy import create_engine

# Load environment variables
# Try reportengine/.env first, then fall back to project root/.env
package_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
env_path = os.path.join(package_dir, '.env')
if os.path.exists(env_path):
    load_dotenv(env_path)
else:
    # Fall back to default behavior (searches from current directory upward)
    load_dotenv()

sqlite_db_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'database_instance', 'reports.db')
DEFAULT_DB_URL = f'sqlite:///{sqlite_db_path}'

_engines = {}
_engines_lock = threading.Lock()


def get_database_url(store):
    """
    Resolve the SQLAlchemy URL for a store.

    Args:
        store: 'metadata' for report definitions, 'data' for report queries

    Returns:
        URL string; REPORT_METADATA_DB_URL / REPORT_DATA_DB_URL win over REPORT_DB_URL
    """
    specific = os.getenv(f"REPORT_{store.upper()}_DB_URL")
    return specific or os.getenv("REPORT_DB_URL") or DEFAULT_DB_URL


def get_engine(url):
    with _engines_lock:
        engine = _engines.get(url)
        if engine is None:
            if url.startswith('sqlite:///'):
                os.makedirs(os.path.dirname(os.path.abspath(url[len('sqlite:///'):])), exist_ok=True)
            engine = create_engine(url, pool_pre_ping=True)
            _engines[url] = engine
        return engine


def _raw_connection(store):
    from reportengine.modules.logger import debug, error

    url = get_database_url(store)
    try:
        connection = get_engine(url).raw_connection()
        debug(f"{store.capitalize()} connection established ({url.split('://', 1)[0]})")
        return connection
    except Exception as e:
        error(f"Error establishing {store} connection: {str(e)}")
        raise


def create_metadata_connection():
    """DB-API connection to the store holding report_definitions/report_columns/report_filters/settings."""
    return _raw_connection('metadata')


def create_data_connection():
    """DB-API connection to the store the report base queries run against."""
    return _raw_connection('data')


def dispose_engines():
    with _engines_lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()
