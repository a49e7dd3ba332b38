# storefront/app/models/record.py
from typing import Any, Dict

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storefront.app.db import Base
from storefront.app.models.base import IdMixin, TimestampMixin


class Record(Base, IdMixin, TimestampMixin):
    """
    One keyed document inside a named collection
    (products, orders, users, carts, activity, notifications, analytics).
    """
    __tablename__ = "records"
    __table_args__ = (
        UniqueConstraint("collection", "key", name="uq_records_collection_key"),
    )

    collection: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def as_document(self) -> Dict[str, Any]:
        doc = dict(self.data or {})
        doc.setdefault("id", self.key)
        return doc

    def __repr__(self):
        return f"<Record {self.collection}/{self.key}>"
