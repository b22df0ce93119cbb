"""
Domain constants used across services/routers.
"""

# Audit entry vocabulary
AUDIT_ACTION_UPDATE = "update"
AUDIT_ACTION_DELETE = "delete"
AUDIT_ACTION_REPAIR = "repair"
AUDIT_ACTION_GRANT = "grant"

RESOURCE_ORDER = "order"
RESOURCE_USER = "user"
RESOURCE_AUDIT_LOG = "audit_log"

# Actor recorded when a mutation has no authenticated caller (CLI, jobs)
SYSTEM_ACTOR = "system"
UNKNOWN_CLIENT = "N/A"
