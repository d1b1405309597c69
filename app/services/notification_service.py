"""
Notification service — default receivers for request workflow signals.

The core only announces events; delivering them (email, web push,
chat) is left to subscribers registered elsewhere.  The receivers here
record each event in the application log so admins can follow the
workflow without any delivery channel configured.
"""

import logging

from flask import Flask

from app import signals

logger = logging.getLogger(__name__)


def on_request_submitted(req, device=None, **extra) -> None:
    """Log a new pending request for the admins' attention."""
    logger.info(
        "Notify admins: %s request %d for device %d (%s) by user %d",
        req.type.value,
        req.id,
        req.device_id,
        device.project if device is not None else "?",
        req.user_id,
    )


def on_request_processed(req, device=None, decision=None, **extra) -> None:
    """Log a resolution for the requesting user."""
    logger.info(
        "Notify user %d: %s request %d was %s",
        req.user_id,
        req.type.value,
        req.id,
        req.status.value,
    )


def on_request_cancelled(req, device=None, **extra) -> None:
    logger.info("Notify admins: request %d was cancelled", req.id)


def register_receivers(app: Flask) -> None:
    """Connect the logging receivers once per process."""
    # Connecting the same receiver twice is a no-op.
    signals.request_submitted.connect(on_request_submitted)
    signals.request_processed.connect(on_request_processed)
    signals.request_cancelled.connect(on_request_cancelled)
    app.logger.debug("Registered request notification receivers")
