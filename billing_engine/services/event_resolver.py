"""Locate the internal subscription a provider event refers to."""

from typing import Optional

from billing_engine.logging_config import get_logger
from billing_engine.models import Provider, ResolutionQuery, SubscriptionRecord
from billing_engine.repositories.subscription_store import SubscriptionStore

logger = get_logger(__name__)


class EventResolver:
    """Deterministic fallback chain from event fields to a subscription.

    Order, first match wins:
    1. exact provider subscription id
    2. most recently updated subscription of the establishment
    3. most recently updated subscription of the customer (user)

    A plan id on the query narrows steps 2 and 3.
    """

    def __init__(self, store: SubscriptionStore):
        self.store = store

    def resolve(
        self, query: ResolutionQuery, provider: Optional[Provider] = None
    ) -> Optional[SubscriptionRecord]:
        """Return the matching subscription or None (a resolution miss).

        Args:
            query: Identifying fields from the event
            provider: Restrict the provider subscription id match to this provider
        """
        if query.provider_subscription_id:
            subscription = self.store.find_by_provider_subscription_id(
                query.provider_subscription_id, provider=provider
            )
            if subscription is not None:
                self._log_match("provider_subscription_id", subscription)
                return subscription

        if query.establishment_id:
            subscription = self.store.latest_for_establishment(query.establishment_id, plan_id=query.plan_id)
            if subscription is not None:
                self._log_match("establishment_id", subscription)
                return subscription

        if query.customer_id:
            subscription = self.store.latest_for_user(query.customer_id, plan_id=query.plan_id)
            if subscription is not None:
                self._log_match("customer_id", subscription)
                return subscription

        logger.info(
            "subscription_resolution_miss",
            provider_subscription_id=query.provider_subscription_id,
            establishment_id=query.establishment_id,
            customer_id=query.customer_id,
            plan_id=query.plan_id,
        )
        return None

    @staticmethod
    def _log_match(matched_on: str, subscription: SubscriptionRecord) -> None:
        logger.debug("subscription_resolved", matched_on=matched_on, subscription_id=subscription.id)
