"""
Settings key/value store — persisted fallbacks between runs.

Reads return None on any DB error; writes log and swallow so a failing
settings table never blocks a profitability run.
"""
import logging

from minerchecker.database import get_session
from minerchecker.models.setting import Setting

logger = logging.getLogger('services.settings_store')


def get_setting(key):
    """Return the stored JSON value for key, or None."""
    session = get_session()
    try:
        row = session.get(Setting, key)
        return row.value if row is not None else None
    except Exception:
        logger.error("Failed to read setting %s", key, exc_info=True)
        return None
    finally:
        session.close()


def put_setting(key, value) -> bool:
    """INSERT or UPDATE a setting. Returns True on commit."""
    session = get_session()
    try:
        row = session.get(Setting, key)
        if row is None:
            session.add(Setting(key=key, value=value))
        else:
            row.value = value
        session.commit()
        return True
    except Exception:
        session.rollback()
        logger.error("Failed to persist setting %s", key, exc_info=True)
        return False
    finally:
        session.close()
