class GatewayError(Exception):
    """Base exception for the webhook gateway.

    ``status_code`` is the HTTP status the endpoint answers with and
    ``public_message`` the plain-text body sent back to the provider.
    """

    status_code = 500
    public_message: str | None = None

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message or self.__class__.__name__)

    @property
    def response_text(self) -> str:
        return self.public_message or str(self)


class WebhookConfigurationError(GatewayError):
    """Raised when a webhook secret is missing or unusable."""

    status_code = 500


class WebhookRequestError(GatewayError):
    """Raised when a delivery is malformed (missing headers, bad payload)."""

    status_code = 400


class WebhookSignatureError(WebhookRequestError):
    """Raised when a delivery fails signature verification."""

    pass


class EventPayloadError(WebhookRequestError):
    """Raised when a verified body cannot be decoded into an event."""

    def __init__(self, message: str = "Invalid webhook payload"):
        super().__init__(message)


class ProjectionError(GatewayError):
    """Raised when a verified event cannot be applied to stored state."""

    status_code = 500
    public_message = "Webhook processing failed"


class SubscriptionOwnerNotFoundError(ProjectionError):
    """Raised when no user can be linked to a new subscription."""

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"No user found to link subscription for customer {customer_id}")
