"""All enum types for the sample tracker data model."""

import enum


# --- Sample Enums ---

class SampleStatus(str, enum.Enum):
    COLLECTED = "COLLECTED"
    STORED = "STORED"
    IN_TRANSIT = "IN_TRANSIT"
    DISCARDED = "DISCARDED"
    ARCHIVED = "ARCHIVED"


# --- Storage Enums ---

class BoxType(str, enum.Enum):
    CRYO_81 = "cryo_81"
    CRYO_100 = "cryo_100"
    RACK_96 = "rack_96"
    CUSTOM = "custom"


# --- User / Role Enums ---

class UserRole(str, enum.Enum):
    GLOBAL_ADMIN = "Global Admin"
    LAB_ADMIN = "Laboratory Admin"
    SUPERVISOR = "Supervisor"
    LAB_TECHNICIAN = "Laboratory Technician"
    VIEWER = "Viewer"


# --- Audit Enums ---

class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MOVE = "move"
    STATUS_CHANGE = "status_change"
    BLOCK = "block"
