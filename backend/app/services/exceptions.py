"""Domain errors raised by the device services; routers map them to HTTP status codes."""


class DeviceServiceError(Exception):
    """Base class for device service failures."""


class DeviceNotFoundError(DeviceServiceError):
    def __init__(self, device_id: str):
        super().__init__(f"Device {device_id} not found")
        self.device_id = device_id


class RegistryUnavailableError(DeviceServiceError):
    """The device store could not be read or written. Callers must fail closed."""


class InvalidDeviceActionError(DeviceServiceError):
    pass
