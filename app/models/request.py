"""
DeviceRequest model — a proposed state change against one device.

A request is created ``pending`` and moves exactly once to a terminal
status (approved, rejected, cancelled).  The partial unique index
below is the storage-level guarantee that a device never has two
pending requests, even when two submissions race.
"""

from datetime import datetime, timezone

from app.extensions import db
from app.models.enums import ReportType, RequestStatus, RequestType, enum_column

# Bounds for the optional rental period on assign requests.
MIN_RENTAL_DAYS = 7
MAX_RENTAL_DAYS = 365

_PENDING_ONLY = db.text("status = 'pending'")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceRequest(db.Model):
    """
    A user's request to assign, release, report or return a device.

    ``processed_at`` / ``processed_by_id`` are set exactly once, when
    the status leaves ``pending``.
    """

    __tablename__ = "device_request"
    __table_args__ = (
        db.Index(
            "uq_device_request_one_pending",
            "device_id",
            unique=True,
            sqlite_where=_PENDING_ONLY,
            postgresql_where=_PENDING_ONLY,
            mssql_where=_PENDING_ONLY,
        ),
        db.CheckConstraint(
            "rental_period_days IS NULL OR "
            f"(rental_period_days >= {MIN_RENTAL_DAYS} "
            f"AND rental_period_days <= {MAX_RENTAL_DAYS})",
            name="ck_device_request_rental_period",
        ),
        db.CheckConstraint(
            "(type = 'report' AND report_type IS NOT NULL) OR "
            "(type <> 'report' AND report_type IS NULL)",
            name="ck_device_request_report_type",
        ),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    device_id = db.Column(
        db.Integer,
        db.ForeignKey("device.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=False, index=True
    )
    type = db.Column(enum_column(RequestType, "request_type"), nullable=False)
    report_type = db.Column(enum_column(ReportType, "report_type"), nullable=True)
    reason = db.Column(db.String(500), nullable=True)
    rental_period_days = db.Column(db.Integer, nullable=True)
    status = db.Column(
        enum_column(RequestStatus, "request_status"),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    requested_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow
    )
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_by_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=True
    )

    # -- Relationships -----------------------------------------------------
    device = db.relationship("Device", back_populates="requests")
    user = db.relationship("User", foreign_keys=[user_id])
    processed_by = db.relationship("User", foreign_keys=[processed_by_id])

    @property
    def is_pending(self) -> bool:
        return not self.status.is_terminal

    def to_dict(self) -> dict:
        """JSON-safe representation used by the API."""
        return {
            "id": self.id,
            "device_id": self.device_id,
            "user_id": self.user_id,
            "user_name": self.user.full_name if self.user else None,
            "type": self.type.value,
            "report_type": self.report_type.value if self.report_type else None,
            "reason": self.reason,
            "rental_period_days": self.rental_period_days,
            "status": self.status.value,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "processed_by_id": self.processed_by_id,
        }

    def __repr__(self) -> str:
        return (
            f"<DeviceRequest {self.id} {self.type.value} "
            f"device={self.device_id} status={self.status.value}>"
        )
