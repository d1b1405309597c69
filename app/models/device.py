"""
Device model — one physical lendable unit.

``status`` is the single source of truth for lifecycle state.
``requested_by_id`` is a denormalized marker mirroring "a pending
request exists for this device"; only the request workflow service
writes it, inside the same transaction that creates, resolves or
cancels the request.
"""

from datetime import date, datetime, timezone

from app.extensions import db
from app.models.enums import (
    DeviceCategory,
    DeviceStatus,
    DeviceType,
    enum_column,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class Device(db.Model):
    """
    A physical device tracked by the lending system.

    IMEI and serial number are informational and deliberately not
    unique; two records may share either value.
    """

    __tablename__ = "device"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    project = db.Column(db.String(200), nullable=False, index=True)
    project_group = db.Column(db.String(200), nullable=False, index=True)
    type = db.Column(enum_column(DeviceCategory, "device_category"), nullable=False)
    device_type = db.Column(
        enum_column(DeviceType, "device_hw_type"),
        nullable=False,
        default=DeviceType.C_TYPE,
    )
    imei = db.Column(db.String(50), nullable=True)
    serial_number = db.Column(db.String(100), nullable=True)
    model_number = db.Column(db.String(100), nullable=True)
    status = db.Column(
        enum_column(DeviceStatus, "device_status"),
        nullable=False,
        default=DeviceStatus.AVAILABLE,
        index=True,
    )
    assigned_to_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=True, index=True
    )
    requested_by_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=True
    )
    added_by_id = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    received_date = db.Column(db.Date, nullable=True)
    return_date = db.Column(db.Date, nullable=True)
    expiration_date = db.Column(db.Date, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    memo = db.Column(db.Text, nullable=True)
    device_picture = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # -- Relationships -----------------------------------------------------
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])
    requested_by = db.relationship("User", foreign_keys=[requested_by_id])
    added_by = db.relationship("User", foreign_keys=[added_by_id])
    # Loaded only when a device is deleted; the ORM removes the history
    # rows itself so backends without enforced foreign keys stay clean.
    requests = db.relationship(
        "DeviceRequest",
        back_populates="device",
        cascade="all, delete-orphan",
        order_by="DeviceRequest.id",
    )

    def to_dict(self) -> dict:
        """JSON-safe representation used by the API."""
        return {
            "id": self.id,
            "project": self.project,
            "project_group": self.project_group,
            "type": self.type.value if self.type else None,
            "device_type": self.device_type.value if self.device_type else None,
            "imei": self.imei,
            "serial_number": self.serial_number,
            "model_number": self.model_number,
            "status": self.status.value if self.status else None,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to_name": (
                self.assigned_to.full_name if self.assigned_to else None
            ),
            "requested_by_id": self.requested_by_id,
            "added_by_id": self.added_by_id,
            "received_date": _iso(self.received_date),
            "return_date": _iso(self.return_date),
            "expiration_date": _iso(self.expiration_date),
            "notes": self.notes,
            "memo": self.memo,
            "device_picture": self.device_picture,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        status = self.status.value if self.status else None
        return f"<Device {self.id} {self.project} status={status}>"
