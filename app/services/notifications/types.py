class NotificationType:
    """Keys recipients subscribe to (notification_recipients.notification_types)."""

    POSTER_GENERATED = "POSTER_GENERATED"
    POSTER_GENERATION_FAILED = "POSTER_GENERATION_FAILED"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    SYSTEM_SETTING_CHANGED = "SYSTEM_SETTING_CHANGED"


class ActorType:
    ADMIN = "admin"
    USER = "user"
    SYSTEM = "system"


class Channel:
    EMAIL = "email"
    SMS = "sms"


class DeliveryStatus:
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
