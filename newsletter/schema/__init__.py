"""ORM models. Importing this package registers every table on `Base.metadata`."""

from newsletter.schema.delivery_queue import IssueDeliveryTask
from newsletter.schema.idempotency import IdempotencyRecord
from newsletter.schema.issues import NewsletterIssue
from newsletter.schema.sql import Subscription, SubscriptionStatus

__all__ = ["IdempotencyRecord", "IssueDeliveryTask", "NewsletterIssue", "Subscription", "SubscriptionStatus"]
