"""Interface permission table.

Static policy consulted by the authorization engine and the interface access check:
which access level, permissions and roles each POS interface requires, the minimum
device hardware it needs, and which permissions a session opened on it is granted.
"""
from dataclasses import dataclass, field
from typing import Iterable, Optional

from app.core.enums import AccessLevel, DeviceType, InterfaceType
from app.schemas.device import DeviceCapabilities

BASE_PERMISSION = "pos:basic_access"

MANAGER_ROLES = frozenset({"MANAGER", "OWNER", "ADMIN"})


@dataclass(frozen=True)
class DeviceRequirements:
    min_screen_width: Optional[int] = None
    min_screen_height: Optional[int] = None
    touch_required: bool = False
    camera_required: bool = False
    printer_required: bool = False
    cash_drawer_required: bool = False


@dataclass(frozen=True)
class InterfaceFeatures:
    can_take_orders: bool = False
    can_process_payments: bool = False
    can_view_kitchen: bool = False
    can_manage_inventory: bool = False
    can_access_reports: bool = False
    can_manage_workers: bool = False
    can_modify_prices: bool = False
    can_process_refunds: bool = False
    can_override_discounts: bool = False


@dataclass(frozen=True)
class InterfaceConfig:
    interface: InterfaceType
    access_level: AccessLevel
    required_permissions: frozenset = frozenset()
    allowed_roles: frozenset = frozenset()
    device_requirements: Optional[DeviceRequirements] = None
    features: InterfaceFeatures = field(default_factory=InterfaceFeatures)
    # granted to a session on this interface, on top of BASE_PERMISSION
    session_permissions: tuple = ()


INTERFACE_CONFIGS: dict[InterfaceType, InterfaceConfig] = {
    InterfaceType.CUSTOMER_ORDERING: InterfaceConfig(
        interface=InterfaceType.CUSTOMER_ORDERING,
        access_level=AccessLevel.PUBLIC,
        allowed_roles=frozenset({"CUSTOMER"}),
        features=InterfaceFeatures(can_take_orders=True, can_process_payments=True),
    ),
    InterfaceType.CUSTOMER_KIOSK: InterfaceConfig(
        interface=InterfaceType.CUSTOMER_KIOSK,
        access_level=AccessLevel.PUBLIC,
        allowed_roles=frozenset({"CUSTOMER"}),
        device_requirements=DeviceRequirements(
            min_screen_width=1024, min_screen_height=768, touch_required=True
        ),
        features=InterfaceFeatures(can_take_orders=True, can_process_payments=True),
    ),
    InterfaceType.ORDER_ENTRY: InterfaceConfig(
        interface=InterfaceType.ORDER_ENTRY,
        access_level=AccessLevel.WORKER_SESSION,
        required_permissions=frozenset({"pos:order_entry"}),
        allowed_roles=frozenset({"CASHIER", "SERVER", "MANAGER"}),
        features=InterfaceFeatures(
            can_take_orders=True,
            can_process_payments=True,
            can_process_refunds=True,
            can_override_discounts=True,
        ),
        session_permissions=("pos:order_entry", "pos:customer_service"),
    ),
    InterfaceType.KITCHEN_DISPLAY: InterfaceConfig(
        interface=InterfaceType.KITCHEN_DISPLAY,
        access_level=AccessLevel.WORKER_SESSION,
        required_permissions=frozenset({"pos:kitchen_display"}),
        allowed_roles=frozenset({"COOK", "KITCHEN_MANAGER", "MANAGER"}),
        features=InterfaceFeatures(can_view_kitchen=True),
        session_permissions=("pos:kitchen_display", "pos:order_management"),
    ),
    InterfaceType.PAYMENT_TERMINAL: InterfaceConfig(
        interface=InterfaceType.PAYMENT_TERMINAL,
        access_level=AccessLevel.WORKER_SESSION,
        required_permissions=frozenset({"pos:payment_processing"}),
        allowed_roles=frozenset({"CASHIER", "MANAGER"}),
        device_requirements=DeviceRequirements(touch_required=True),
        features=InterfaceFeatures(can_process_payments=True, can_process_refunds=True),
        session_permissions=("pos:payment_processing", "pos:refund_processing"),
    ),
    InterfaceType.MANAGER_TERMINAL: InterfaceConfig(
        interface=InterfaceType.MANAGER_TERMINAL,
        access_level=AccessLevel.MANAGER_ONLY,
        required_permissions=frozenset({"pos:manager_functions"}),
        allowed_roles=frozenset({"MANAGER", "OWNER"}),
        features=InterfaceFeatures(
            can_take_orders=True,
            can_process_payments=True,
            can_view_kitchen=True,
            can_manage_inventory=True,
            can_access_reports=True,
            can_manage_workers=True,
            can_modify_prices=True,
            can_process_refunds=True,
            can_override_discounts=True,
        ),
        session_permissions=(
            "pos:manager_functions",
            "pos:override_permissions",
            "pos:staff_management",
        ),
    ),
    InterfaceType.DRIVE_THRU: InterfaceConfig(
        interface=InterfaceType.DRIVE_THRU,
        access_level=AccessLevel.WORKER_SESSION,
        required_permissions=frozenset({"pos:drive_thru"}),
        allowed_roles=frozenset({"CASHIER", "MANAGER"}),
        features=InterfaceFeatures(
            can_take_orders=True,
            can_process_payments=True,
            can_process_refunds=True,
            can_override_discounts=True,
        ),
        session_permissions=("pos:drive_thru", "pos:order_entry"),
    ),
    InterfaceType.MOBILE_POS: InterfaceConfig(
        interface=InterfaceType.MOBILE_POS,
        access_level=AccessLevel.WORKER_SESSION,
        required_permissions=frozenset({"pos:mobile_access"}),
        allowed_roles=frozenset({"SERVER", "MANAGER"}),
        device_requirements=DeviceRequirements(touch_required=True),
        features=InterfaceFeatures(can_take_orders=True, can_process_payments=True),
        session_permissions=("pos:mobile_access", "pos:order_entry"),
    ),
    InterfaceType.INVENTORY_TERMINAL: InterfaceConfig(
        interface=InterfaceType.INVENTORY_TERMINAL,
        access_level=AccessLevel.ROLE_RESTRICTED,
        required_permissions=frozenset({"inventory:manage"}),
        allowed_roles=frozenset({"INVENTORY_MANAGER", "MANAGER"}),
        features=InterfaceFeatures(can_manage_inventory=True, can_access_reports=True),
        session_permissions=("inventory:manage",),
    ),
}

# Interfaces a newly registered device may open, by hardware class
DEFAULT_INTERFACES_BY_DEVICE_TYPE: dict[DeviceType, tuple[InterfaceType, ...]] = {
    DeviceType.CUSTOMER_KIOSK: (InterfaceType.CUSTOMER_KIOSK, InterfaceType.CUSTOMER_ORDERING),
    DeviceType.KITCHEN_DISPLAY: (InterfaceType.KITCHEN_DISPLAY,),
    DeviceType.PAYMENT_TERMINAL: (InterfaceType.PAYMENT_TERMINAL,),
    DeviceType.MOBILE_POS: (InterfaceType.MOBILE_POS, InterfaceType.ORDER_ENTRY),
    DeviceType.TABLET_POS: (
        InterfaceType.ORDER_ENTRY,
        InterfaceType.PAYMENT_TERMINAL,
        InterfaceType.MANAGER_TERMINAL,
    ),
    DeviceType.MANAGER_STATION: (
        InterfaceType.MANAGER_TERMINAL,
        InterfaceType.ORDER_ENTRY,
        InterfaceType.PAYMENT_TERMINAL,
        InterfaceType.KITCHEN_DISPLAY,
    ),
}


def get_interface_config(interface: str) -> Optional[InterfaceConfig]:
    try:
        return INTERFACE_CONFIGS[InterfaceType(interface)]
    except ValueError:
        return None


def default_interfaces_for(device_type: DeviceType) -> list[str]:
    return [i.value for i in DEFAULT_INTERFACES_BY_DEVICE_TYPE.get(device_type, (InterfaceType.CUSTOMER_ORDERING,))]


def permissions_for_interface(interface: str) -> list[str]:
    """Permission strings granted to a session opened on `interface`."""
    config = get_interface_config(interface)
    extra = list(config.session_permissions) if config else []
    return [BASE_PERMISSION] + extra


def meets_device_requirements(
    capabilities: DeviceCapabilities,
    requirements: Optional[DeviceRequirements],
) -> bool:
    if requirements is None:
        return True
    if requirements.min_screen_width and capabilities.screen_width < requirements.min_screen_width:
        return False
    if requirements.min_screen_height and capabilities.screen_height < requirements.min_screen_height:
        return False
    if requirements.touch_required and not capabilities.touch_enabled:
        return False
    if requirements.camera_required and not capabilities.camera_enabled:
        return False
    if requirements.printer_required and not capabilities.printer_connected:
        return False
    if requirements.cash_drawer_required and not capabilities.cash_drawer_connected:
        return False
    return True


def can_access_interface(
    interface: str,
    user_role: Optional[str],
    permissions: Iterable[str],
    has_active_session: bool = False,
) -> bool:
    """Access-level and permission gate for one interface."""
    config = get_interface_config(interface)
    if config is None:
        return False
    if not config.required_permissions.issubset(set(permissions)):
        return False
    role = (user_role or "").upper()
    level = config.access_level
    if level == AccessLevel.PUBLIC:
        return True
    if level in (AccessLevel.WORKER_SESSION, AccessLevel.DEVICE_SPECIFIC):
        return has_active_session
    if level == AccessLevel.ROLE_RESTRICTED:
        return has_active_session and role in config.allowed_roles
    if level == AccessLevel.MANAGER_ONLY:
        return has_active_session and role in MANAGER_ROLES
    return False


def available_interfaces(
    user_role: Optional[str],
    permissions: Iterable[str],
    capabilities: Optional[DeviceCapabilities] = None,
) -> list[InterfaceType]:
    """Interfaces a user with `user_role` and `permissions` could open on a device."""
    role = (user_role or "").upper()
    granted = set(permissions)
    result = []
    for interface, config in INTERFACE_CONFIGS.items():
        if role not in config.allowed_roles and "CUSTOMER" not in config.allowed_roles:
            continue
        if not config.required_permissions.issubset(granted):
            continue
        if capabilities is not None and not meets_device_requirements(capabilities, config.device_requirements):
            continue
        result.append(interface)
    return result
