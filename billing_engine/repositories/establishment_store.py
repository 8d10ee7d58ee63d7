"""Establishment store - establishments and user contacts.

The billing engine writes the mirrored subscription fields of an
establishment and reads phone numbers for outbound messages.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from billing_engine.models import Contact, EstablishmentRecord, SubscriptionRecord, UserContact
from billing_engine.state_logger import log_establishment_mirror


class EstablishmentStore:
    """In-memory storage for establishments and user contacts. Thread-safe."""

    def __init__(self):
        self._establishments: Dict[str, EstablishmentRecord] = {}
        self._users: Dict[str, UserContact] = {}
        self._lock = threading.RLock()

    def upsert_establishment(self, establishment: EstablishmentRecord) -> None:
        with self._lock:
            self._establishments[establishment.id] = establishment.model_copy(deep=True)

    def get_establishment(self, establishment_id: str) -> Optional[EstablishmentRecord]:
        with self._lock:
            establishment = self._establishments.get(establishment_id)
            return establishment.model_copy(deep=True) if establishment else None

    def find_owned_by(self, owner_id: str) -> List[EstablishmentRecord]:
        with self._lock:
            return [e.model_copy(deep=True) for e in self._establishments.values() if e.owner_id == owner_id]

    def upsert_user(self, user: UserContact) -> None:
        with self._lock:
            self._users[user.id] = user.model_copy(deep=True)

    def get_user(self, user_id: str) -> Optional[UserContact]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user else None

    def mirror_subscription(
        self,
        subscription: SubscriptionRecord,
        status: str,
        end_date: Optional[datetime] = None,
    ) -> List[str]:
        """Write subscription_status (and end date) onto the owning establishment(s).

        The subscription's own establishment wins; otherwise every establishment
        owned by the subscription's user is updated.

        Returns:
            Ids of establishments written
        """
        with self._lock:
            if subscription.establishment_id:
                targets = [self._establishments.get(subscription.establishment_id)]
            elif subscription.user_id:
                targets = [e for e in self._establishments.values() if e.owner_id == subscription.user_id]
            else:
                targets = []

            updated = []
            for establishment in targets:
                if establishment is None:
                    continue
                establishment.subscription_status = status
                if end_date is not None:
                    establishment.subscription_end_date = end_date
                updated.append(establishment.id)
                log_establishment_mirror(
                    establishment_id=establishment.id,
                    subscription_status=status,
                    subscription_end_date=establishment.subscription_end_date,
                    subscription_id=subscription.id,
                )
            return updated

    def resolve_contact(self, subscription: SubscriptionRecord) -> Contact:
        """Phone and establishment to address a billing message for a subscription."""
        with self._lock:
            if subscription.establishment_id:
                establishment = self._establishments.get(subscription.establishment_id)
                return Contact(
                    establishment_id=subscription.establishment_id,
                    phone=establishment.phone if establishment else None,
                )
            if subscription.user_id:
                user = self._users.get(subscription.user_id)
                if user is not None:
                    return Contact(establishment_id=user.establishment_id, phone=user.phone)
            return Contact()

    def clear(self) -> None:
        with self._lock:
            self._establishments.clear()
            self._users.clear()

    def __repr__(self) -> str:
        return f"EstablishmentStore(establishments={len(self._establishments)}, users={len(self._users)})"
