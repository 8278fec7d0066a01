from .store import InsertResult, SQLAlchemyHandle, SQLAlchemyStore, Store, StoreHandle, WriteResult

__all__ = ['InsertResult', 'WriteResult', 'StoreHandle', 'Store', 'SQLAlchemyHandle', 'SQLAlchemyStore']
