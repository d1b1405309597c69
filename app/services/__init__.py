"""
Service layer package.

Each service module encapsulates one domain of business logic.
Services are the only layer that interacts with models; routes
never access the database directly.

  - device_service:       device registry and read-side views
  - request_service:      request workflow engine
  - audit_service:        audit trail writes and queries
  - user_service:         user lookup, provisioning, roles
  - notification_service: default receivers for workflow signals

Import services in route modules as needed::

    from app.services import request_service
"""
