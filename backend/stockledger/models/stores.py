from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow

class Store(db.Model):
    """
    Sale destination for DECREASE ledger entries.

    Store codes are unique case-insensitively (code_key) and immutable.
    Stores are never physically deleted; status=INACTIVE retires them while
    keeping their ledger history attributable.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("code_key", name="uq_stores_code_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    code_key = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    def __repr__(self) -> str:
        return f"<Store id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
        }
