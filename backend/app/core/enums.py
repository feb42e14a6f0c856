"""Enumerations shared by the server and the device agent.

Kept free of database imports so the agent can use them without SQLAlchemy.
"""
import enum


class DeviceType(str, enum.Enum):
    CUSTOMER_KIOSK = "CUSTOMER_KIOSK"
    KITCHEN_DISPLAY = "KITCHEN_DISPLAY"
    PAYMENT_TERMINAL = "PAYMENT_TERMINAL"
    MANAGER_STATION = "MANAGER_STATION"
    MOBILE_POS = "MOBILE_POS"
    TABLET_POS = "TABLET_POS"


class DeviceStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    MAINTENANCE = "MAINTENANCE"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    BLOCKED = "BLOCKED"


class SessionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    IDLE = "IDLE"
    # terminal: absolute expiry reached
    EXPIRED = "EXPIRED"
    # terminal: logout, device suspension or deletion
    TERMINATED = "TERMINATED"


TERMINAL_SESSION_STATUSES = frozenset({SessionStatus.EXPIRED, SessionStatus.TERMINATED})


class InterfaceType(str, enum.Enum):
    # Customer-facing
    CUSTOMER_ORDERING = "CUSTOMER_ORDERING"
    CUSTOMER_KIOSK = "CUSTOMER_KIOSK"
    # Worker-facing
    ORDER_ENTRY = "ORDER_ENTRY"
    PAYMENT_TERMINAL = "PAYMENT_TERMINAL"
    KITCHEN_DISPLAY = "KITCHEN_DISPLAY"
    MANAGER_TERMINAL = "MANAGER_TERMINAL"
    # Specialized
    DRIVE_THRU = "DRIVE_THRU"
    MOBILE_POS = "MOBILE_POS"
    INVENTORY_TERMINAL = "INVENTORY_TERMINAL"


class AccessLevel(str, enum.Enum):
    PUBLIC = "PUBLIC"
    WORKER_SESSION = "WORKER_SESSION"
    ROLE_RESTRICTED = "ROLE_RESTRICTED"
    MANAGER_ONLY = "MANAGER_ONLY"
    DEVICE_SPECIFIC = "DEVICE_SPECIFIC"


class ConnectionType(str, enum.Enum):
    wifi = "wifi"
    cellular = "cellular"
    ethernet = "ethernet"
    unknown = "unknown"


# user id reported for sessions opened without a signed-in user
ANONYMOUS_USER = "anonymous"
