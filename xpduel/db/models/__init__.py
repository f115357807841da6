from xpduel.db.models.base import Base
from xpduel.db.models.store_records import StoreRecord

__all__ = ["Base", "StoreRecord"]
