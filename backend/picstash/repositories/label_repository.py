"""LabelRepository - data access for the labels table"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from picstash.models.label import Label


@dataclass
class LabelWithEmbedding:
    """Label id and name plus its stored text embedding bytes."""
    id: str
    name: str
    embedding: Optional[bytes]


class LabelRepository:
    """Label queries bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, label_id: str) -> Optional[Label]:
        return self.db.query(Label).filter(Label.id == label_id).first()

    def find_all_with_embedding(self) -> list[LabelWithEmbedding]:
        rows = (
            self.db.query(Label.id, Label.name, Label.embedding)
            .filter(Label.embedding.isnot(None))
            .order_by(Label.name)
            .all()
        )
        return [LabelWithEmbedding(id=r[0], name=r[1], embedding=r[2]) for r in rows]

    def find_without_embedding(self) -> list[tuple[str, str]]:
        """(id, name) of labels that have no embedding yet."""
        rows = (
            self.db.query(Label.id, Label.name)
            .filter(Label.embedding.is_(None))
            .order_by(Label.name)
            .all()
        )
        return [(r[0], r[1]) for r in rows]

    def count(self) -> int:
        return self.db.query(Label).count()

    def count_with_embedding(self) -> int:
        return self.db.query(Label).filter(Label.embedding.isnot(None)).count()

    def update_embedding(self, label_id: str, embedding: Optional[bytes]) -> None:
        embedded_at = datetime.now(timezone.utc) if embedding is not None else None
        self.db.query(Label).filter(Label.id == label_id).update(
            {Label.embedding: embedding, Label.embedded_at: embedded_at},
            synchronize_session=False,
        )
        self.db.commit()

    def clear_all_embeddings(self) -> int:
        updated = self.db.query(Label).filter(Label.embedding.isnot(None)).update(
            {Label.embedding: None, Label.embedded_at: None},
            synchronize_session=False,
        )
        self.db.commit()
        return updated
