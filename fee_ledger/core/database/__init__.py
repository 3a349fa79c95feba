from fee_ledger.core.database.session import async_session, engine, get_db
from fee_ledger.core.database.base import Base, BaseModel, BigIntPK
from fee_ledger.core.database.transaction import atomic

__all__ = ["async_session", "engine", "get_db", "Base", "BaseModel", "BigIntPK", "atomic"]
