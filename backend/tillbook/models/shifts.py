from __future__ import annotations

from ..extensions import db
from tillbook.time_utils import to_utc_z
from .enums import ShiftStatus


class Shift(db.Model):
    """
    A cashier's working shift (till-open to till-close).

    LIFECYCLE: none -> active -> ended (terminal, never reopened).

    INVARIANT: at most one shift per cashier with end_time IS NULL. Enforced
    by the partial unique index below, not by a prior read.

    The float is NOT counted from float_cents; it enters the till balance
    through the FLOAT cash transaction written at shift start.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_one_active_per_cashier",
            "cashier_id",
            unique=True,
            sqlite_where=db.text("end_time IS NULL"),
            postgresql_where=db.text("end_time IS NULL"),
        ),
        db.CheckConstraint("float_cents >= 0", name="ck_shifts_float_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cashier_id = db.Column(db.String(64), nullable=False, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    float_cents = db.Column(db.Integer, nullable=False, default=0)

    closed_by_id = db.Column(db.String(64), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def status(self) -> ShiftStatus:
        return ShiftStatus.ACTIVE if self.end_time is None else ShiftStatus.ENDED

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashier_id": self.cashier_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "float_cents": self.float_cents,
            "status": self.status.value,
            "closed_by_id": self.closed_by_id,
            "version_id": self.version_id,
        }
