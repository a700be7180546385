import uuid
from datetime import datetime, timezone

from convostack.extensions import db
from convostack.tree.graph import Folder as TreeFolder


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_folder_id() -> str:
    return str(uuid.uuid4())


class Folder(db.Model):
    __tablename__ = "folders"

    id = db.Column(db.String(36), primary_key=True, default=new_folder_id)
    owner_id = db.Column(db.String(120), nullable=False, index=True)
    kind = db.Column(db.String(20), nullable=False, default="bookmark")
    name = db.Column(db.String(255), nullable=False)
    parent_id = db.Column(db.String(36), db.ForeignKey("folders.id"), nullable=True)
    item_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        db.Index("ix_folder_owner_kind_parent", "owner_id", "kind", "parent_id"),
    )

    def as_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "parent_id": self.parent_id,
            "item_count": self.item_count or 0,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def to_tree_folder(self) -> TreeFolder:
        return TreeFolder(
            id=self.id,
            name=self.name,
            parent_id=self.parent_id,
            item_count=self.item_count or 0,
            created_at=self.created_at,
        )
