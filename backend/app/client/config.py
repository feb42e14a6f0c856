from typing import Optional

from pydantic_settings import BaseSettings

from app.core.enums import InterfaceType


class AgentSettings(BaseSettings):
    """Device agent settings, read from POS_AGENT_* environment variables."""

    # Server
    API_URL: str = "http://localhost:8000"
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Where this device is installed and what it should open
    LOCATION_ID: str = ""
    INTERFACE: InterfaceType = InterfaceType.CUSTOMER_ORDERING
    USER_ID: Optional[str] = None
    USER_ROLE: Optional[str] = None
    DEVICE_NAME: Optional[str] = None

    # Local session cache (JSON file)
    CACHE_PATH: str = "~/.pos-device-agent/session.json"
    # Used until the server advertises its own interval
    HEARTBEAT_INTERVAL_SECONDS: int = 60

    # Provisioned hardware facts; a headless agent cannot probe these
    SCREEN_WIDTH: int = 1920
    SCREEN_HEIGHT: int = 1080
    COLOR_DEPTH: int = 24
    TOUCH_ENABLED: bool = False
    # Appended to the reported user agent, e.g. "kiosk" or "tablet"
    USER_AGENT_HINT: str = ""
    PRINTER_CONNECTED: bool = False
    CASH_DRAWER_CONNECTED: bool = False
    BARCODE_SCANNER: bool = False
    CARD_READER: bool = False

    class Config:
        env_prefix = "POS_AGENT_"
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"
