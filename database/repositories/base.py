from sqlalchemy.orm import Session


class BaseRepository:
    def __init__(self, db: Session):
        self.db = db

    def save(self, obj):
        """Add ``obj`` and flush so that generated keys are populated."""
        self.db.add(obj)
        self.db.flush()
        return obj

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
