"""Subscription store - in-memory storage for subscriptions and payment history.

Reads return copies; writes are conditional on the row's updated_at so that
concurrent writers (webhooks and the dunning sweep) never overwrite each
other blindly.
"""

import threading
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from billing_engine.models import (
    PaymentHistoryEntry,
    PaymentOutcome,
    Provider,
    SubscriptionRecord,
    SubscriptionStatus,
)


class SubscriptionNotFoundError(Exception):
    """Raised when a subscription is not found in the store."""

    pass


class CommitResult(str, Enum):
    """Outcome of an atomic payment commit."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"  # transaction already recorded
    CONFLICT = "conflict"  # row changed since it was read


class SubscriptionStore:
    """In-memory storage for subscription records and payment history.

    Thread-safe. Lookup by id, provider subscription id, establishment,
    user and status.
    """

    def __init__(self):
        """Initialize store with empty storage."""
        self._subscriptions: Dict[str, SubscriptionRecord] = {}
        self._history: List[PaymentHistoryEntry] = []
        # dedup key -> created_at of its latest record
        self._history_keys: Dict[Tuple[str, str, str], datetime] = {}
        self._lock = threading.RLock()

    def add(self, subscription: SubscriptionRecord) -> None:
        """Add a subscription to the store.

        Raises:
            ValueError: If subscription id already exists
        """
        with self._lock:
            if subscription.id in self._subscriptions:
                raise ValueError(f"Subscription with id '{subscription.id}' already exists")
            self._subscriptions[subscription.id] = subscription.model_copy(deep=True)

    def get(self, subscription_id: str) -> SubscriptionRecord:
        """Get subscription by id.

        Raises:
            SubscriptionNotFoundError: If id not found
        """
        subscription = self.find(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(f"Subscription not found: {subscription_id}")
        return subscription

    def find(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        """Find subscription by id (returns None if not found)."""
        with self._lock:
            subscription = self._subscriptions.get(subscription_id)
            return subscription.model_copy(deep=True) if subscription else None

    def find_by_provider_subscription_id(
        self, provider_subscription_id: str, provider: Optional[Provider] = None
    ) -> Optional[SubscriptionRecord]:
        """Find the subscription linked to a provider-side subscription id."""
        return self._latest(
            lambda s: s.provider_subscription_id == provider_subscription_id
            and (provider is None or s.provider == provider)
        )

    def latest_for_establishment(
        self, establishment_id: str, plan_id: Optional[str] = None
    ) -> Optional[SubscriptionRecord]:
        """Most recently updated subscription of an establishment."""
        return self._latest(
            lambda s: s.establishment_id == establishment_id
            and (plan_id is None or s.plan_id == plan_id)
        )

    def latest_for_user(self, user_id: str, plan_id: Optional[str] = None) -> Optional[SubscriptionRecord]:
        """Most recently updated subscription of a user."""
        return self._latest(
            lambda s: s.user_id == user_id and (plan_id is None or s.plan_id == plan_id)
        )

    def _latest(self, predicate) -> Optional[SubscriptionRecord]:
        with self._lock:
            matches = [s for s in self._subscriptions.values() if predicate(s)]
            if not matches:
                return None
            latest = max(matches, key=lambda s: s.updated_at)
            return latest.model_copy(deep=True)

    def get_by_status(self, status: SubscriptionStatus) -> List[SubscriptionRecord]:
        """Get all subscriptions in a status."""
        with self._lock:
            return [s.model_copy(deep=True) for s in self._subscriptions.values() if s.status == status]

    def get_pending_provider_suspensions(self) -> List[SubscriptionRecord]:
        """Canceled subscriptions whose provider-side suspension must be retried."""
        with self._lock:
            return [
                s.model_copy(deep=True)
                for s in self._subscriptions.values()
                if s.provider_suspend_pending and s.status == SubscriptionStatus.CANCELED
            ]

    def compare_and_set(self, subscription: SubscriptionRecord, expected_updated_at: datetime) -> bool:
        """Replace a subscription only if it has not changed since it was read.

        Args:
            subscription: New version of the row
            expected_updated_at: updated_at of the version the caller read

        Returns:
            True if written, False if another writer got there first

        Raises:
            SubscriptionNotFoundError: If the row does not exist
        """
        with self._lock:
            current = self._subscriptions.get(subscription.id)
            if current is None:
                raise SubscriptionNotFoundError(f"Subscription not found: {subscription.id}")
            if current.updated_at != expected_updated_at:
                return False
            self._subscriptions[subscription.id] = subscription.model_copy(deep=True)
            return True

    def commit_payment(
        self,
        subscription: SubscriptionRecord,
        entry: PaymentHistoryEntry,
        expected_updated_at: Optional[datetime],
        duplicate_since: Optional[datetime] = None,
    ) -> CommitResult:
        """Atomically record a payment and write the subscription it changed.

        Args:
            subscription: New version of the row (or a new row)
            entry: History entry; its dedup key must not be recorded yet
            expected_updated_at: updated_at the caller read, or None to insert
            duplicate_since: Only records at or after this instant count as
                duplicates (None: any earlier record)

        Returns:
            CommitResult
        """
        with self._lock:
            if self._recorded_since(entry.dedup_key, duplicate_since):
                return CommitResult.DUPLICATE

            current = self._subscriptions.get(subscription.id)
            if expected_updated_at is None:
                if current is not None:
                    return CommitResult.CONFLICT
            elif current is None:
                raise SubscriptionNotFoundError(f"Subscription not found: {subscription.id}")
            elif current.updated_at != expected_updated_at:
                return CommitResult.CONFLICT

            self._subscriptions[subscription.id] = subscription.model_copy(deep=True)
            self._history.append(entry.model_copy(deep=True))
            self._history_keys[entry.dedup_key] = entry.created_at
            return CommitResult.APPLIED

    def has_payment(
        self,
        provider: Provider,
        provider_transaction_id: str,
        outcome: PaymentOutcome,
        since: Optional[datetime] = None,
    ) -> bool:
        """Check whether a provider transaction has already been reconciled.

        Args:
            since: Ignore records older than this instant
        """
        with self._lock:
            return self._recorded_since((provider.value, provider_transaction_id, outcome.value), since)

    def _recorded_since(self, key: Tuple[str, str, str], since: Optional[datetime]) -> bool:
        recorded_at = self._history_keys.get(key)
        if recorded_at is None:
            return False
        return since is None or recorded_at >= since

    def get_payment_history(self, subscription_id: str) -> List[PaymentHistoryEntry]:
        """Payment history of a subscription, oldest first."""
        with self._lock:
            return [e.model_copy(deep=True) for e in self._history if e.subscription_id == subscription_id]

    def get_all(self) -> List[SubscriptionRecord]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._subscriptions.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def count_by_status(self, status: SubscriptionStatus) -> int:
        with self._lock:
            return sum(1 for s in self._subscriptions.values() if s.status == status)

    def clear(self) -> None:
        """Clear all subscriptions and history.

        Warning: This removes all data. Use with caution.
        """
        with self._lock:
            self._subscriptions.clear()
            self._history.clear()
            self._history_keys.clear()

    def get_statistics(self) -> Dict[str, int]:
        """Counts per status plus history size."""
        with self._lock:
            stats = {"total_subscriptions": len(self._subscriptions), "payments": len(self._history)}
            for status in SubscriptionStatus:
                stats[status.value] = sum(1 for s in self._subscriptions.values() if s.status == status)
            return stats

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, subscription_id: str) -> bool:
        with self._lock:
            return subscription_id in self._subscriptions

    def __repr__(self) -> str:
        return f"SubscriptionStore(subscriptions={self.count()})"
