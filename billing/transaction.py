from contextlib import contextmanager

from models import db


@contextmanager
def unit_of_work():
    """
    Usage:
        with unit_of_work() as session:
            ...

    Commits once when the block exits cleanly. Any exception, including one
    raised by the payment gateway, rolls back every write staged in the block
    and is re-raised to the caller.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
