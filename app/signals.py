"""
In-process notification signals for the request workflow.

Signals are sent only after the unit of work has committed, with the
request as sender and the device as keyword payload::

    request_processed.send(req, device=device, decision=req.status)

Receivers must not write to the database in the sender's transaction;
delivery (email, web push) belongs to subscribers outside the core.
"""

from blinker import Namespace

_signals = Namespace()

request_submitted = _signals.signal("request-submitted")
request_processed = _signals.signal("request-processed")
request_cancelled = _signals.signal("request-cancelled")
