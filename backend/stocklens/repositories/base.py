"""
Base Repository — Repository Pattern (GoF)
"""
from typing import Generic, Type, TypeVar

from sqlalchemy.orm import Query, Session

from stocklens.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):

    def __init__(self, model: Type[ModelType], db: Session):
        self.model = model
        self.db = db

    def query(self) -> Query:
        return self.db.query(self.model)
