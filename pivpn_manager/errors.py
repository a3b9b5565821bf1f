from typing import Optional


class ManagerError(Exception):
    """Base class for every error raised by pivpn_manager."""


class ParseError(ManagerError, ValueError):
    def __init__(self, why: str, offender: str) -> None:
        super().__init__(why, offender)
        self.why = why
        self.offender = offender

    def __str__(self) -> str:
        return f"{self.why}: {self.offender!r}"


class PeerNotFoundError(ManagerError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"peer not found: {self.name!r}"


class DuplicatePeerError(ManagerError, ValueError):
    pass


class InvalidPeerNameError(ManagerError, ValueError):
    pass


class ClientNotFoundError(ManagerError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"client not found: {self.name!r}"


class ClientNameExistsError(ManagerError, ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"client with this name already exists: {self.name!r}"


class InvalidClientNameError(ManagerError, ValueError):
    pass


class AddressExhaustedError(ManagerError):
    pass


class ConsistencyError(ManagerError):
    """Tunnel file, client registry and per-client files disagree."""


class FileError(ManagerError):
    def __init__(self, path: str, cause: Optional[BaseException]) -> None:
        super().__init__(path, cause)
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        return f"error with file {self.path!r}: {self.cause}"
