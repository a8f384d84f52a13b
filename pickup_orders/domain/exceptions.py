class DomainException(Exception):
    pass


class InvalidTransition(DomainException):
    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move order from {_name(current)} to {_name(requested)}")


class TransportUnavailable(DomainException):
    pass


class OrderNotFoundError(DomainException):
    pass


def _name(status) -> str:
    return getattr(status, "value", str(status))
