from .database import init_database
from .transaction import transaction
from .utils import utc_now

__all__ = ["init_database", "transaction", "utc_now"]
