# storefront/app/exceptions.py
"""
Error taxonomy for the real-time layer.

None of these are fatal to the process:
- AuthError: reported only to the offending connection
- PayloadValidationError: logged, event still emitted with the raw payload
- DeliveryFailure: isolated to a single connection inside a fan-out
- SchedulerFault: logged and counted, the interval loop keeps running
"""


class RealtimeError(Exception):
    """Base class for real-time layer errors."""


class AuthError(RealtimeError):
    def __init__(self, code: str = "invalid_token", message: str = "Invalid token"):
        super().__init__(message)
        self.code = code
        self.message = message

    def as_frame(self) -> dict:
        return {"error": self.message, "code": self.code}


class PayloadValidationError(RealtimeError):
    def __init__(self, trigger: str, detail: str):
        super().__init__(f"{trigger}: {detail}")
        self.trigger = trigger
        self.detail = detail


class DeliveryFailure(RealtimeError):
    def __init__(self, connection_id: str, event: str, cause: Exception):
        super().__init__(f"delivery of {event} to {connection_id} failed: {cause}")
        self.connection_id = connection_id
        self.event = event
        self.cause = cause


class SchedulerFault(RealtimeError):
    def __init__(self, loop: str, cause: Exception):
        super().__init__(f"{loop} iteration failed: {cause}")
        self.loop = loop
        self.cause = cause
