"""
Mutation gateway: the single entry point for every write.

Each mutation runs as: take the trip lock -> authorize the caller -> apply
in one transaction -> commit -> publish. Publishing happens before the lock
is released so events of one trip go out in commit order; it only schedules
delivery and never waits on subscribers.
"""
import logging
from contextlib import contextmanager
from typing import Iterable, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tripcore.core.config import settings
from tripcore.core.exceptions import Conflict, Forbidden, InvalidInput
from tripcore.core.locks import TripLockRegistry, trip_locks
from tripcore.core.permissions import Action, MemberRole
from tripcore.models.expense import Expense
from tripcore.models.notification import Notification, NotificationType
from tripcore.models.trip import Trip, TripMember
from tripcore.realtime.hub import NotificationHub, EventType, hub
from tripcore.schemas.expense import ExpenseCreate
from tripcore.schemas.trip import TripCreate, TripUpdate
from tripcore.services import expense_service, membership_service, notification_service

logger = logging.getLogger(__name__)


class MutationGateway:
    """Role-checked writes to memberships, the ledger and the inbox."""

    def __init__(self, hub: NotificationHub, locks: TripLockRegistry):
        self.hub = hub
        self.locks = locks

    @contextmanager
    def _transaction(self, db: Session):
        try:
            yield
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.warning("Write rejected by the database: %s", exc.orig)
            raise Conflict("Concurrent update detected, please retry")
        except Exception:
            db.rollback()
            raise

    def _publish(self, trip_id: Optional[int], event_type: EventType, payload: dict,
                 recipients: Iterable[str]):
        try:
            self.hub.publish(trip_id, event_type.value, payload, recipients)
        except Exception:
            # Fan-out problems never fail an accepted mutation
            logger.exception("Failed to publish %s for trip %s", event_type.value, trip_id)

    # Trips

    def create_trip(self, caller_id: str, data: TripCreate, db: Session) -> Trip:
        name = (data.name or "").strip()
        if not name:
            raise InvalidInput("Trip name is required")
        currency = (data.base_currency or settings.DEFAULT_CURRENCY).strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise InvalidInput("Currency must be a 3-letter code", {"currency": data.base_currency})

        with self._transaction(db):
            trip = Trip(name=name, base_currency=currency)
            db.add(trip)
            db.flush()
            with self.locks.hold(trip.id):
                membership_service.assign(trip.id, caller_id, MemberRole.OWNER, db)
        db.refresh(trip)

        logger.info("Trip %s created by %s", trip.id, caller_id)
        self._publish(trip.id, EventType.TRIP_CHANGED, {"action": "created", "actor": caller_id}, [caller_id])
        return trip

    def update_trip(self, trip_id: int, caller_id: str, data: TripUpdate, db: Session) -> Trip:
        with self.locks.hold(trip_id):
            with self._transaction(db):
                membership_service.authorize(trip_id, caller_id, Action.EDIT_TRIP_CONTENT, db)
                trip = membership_service.get_trip(trip_id, db)
                if data.name is not None:
                    if not data.name.strip():
                        raise InvalidInput("Trip name is required")
                    trip.name = data.name.strip()
                if data.base_currency is not None:
                    currency = data.base_currency.strip().upper()
                    if len(currency) != 3 or not currency.isalpha():
                        raise InvalidInput("Currency must be a 3-letter code", {"currency": data.base_currency})
                    trip.base_currency = currency
                db.flush()
            db.refresh(trip)
            logger.info("Trip %s updated by %s", trip_id, caller_id)
            self._publish(trip_id, EventType.TRIP_CHANGED, {"action": "updated", "actor": caller_id},
                          membership_service.member_ids(trip_id, db))
            return trip

    def delete_trip(self, trip_id: int, caller_id: str, db: Session) -> None:
        with self.locks.hold(trip_id):
            with self._transaction(db):
                membership_service.authorize(trip_id, caller_id, Action.DELETE_TRIP, db)
                recipients = membership_service.member_ids(trip_id, db)
                db.delete(membership_service.get_trip(trip_id, db))
                db.flush()
            logger.info("Trip %s deleted by %s", trip_id, caller_id)
            self._publish(trip_id, EventType.TRIP_CHANGED, {"action": "deleted", "actor": caller_id}, recipients)
        self.locks.forget(trip_id)

    # Members

    def assign_member(self, trip_id: int, caller_id: str, user_id: str, role, db: Session) -> TripMember:
        """
        Invite ``user_id`` with ``role``, or change their role if already a member.
        The owner's role can never be changed here.
        """
        with self.locks.hold(trip_id):
            with self._transaction(db):
                membership_service.get_trip(trip_id, db)
                existing = membership_service.get_member(trip_id, user_id, db)
                action = Action.CHANGE_MEMBER_ROLE if existing else Action.MANAGE_MEMBERS
                membership_service.authorize(trip_id, caller_id, action, db)
                if existing and MemberRole(existing.role) == MemberRole.OWNER:
                    logger.warning("Rejected role change of owner %s on trip %s by %s",
                                   user_id, trip_id, caller_id)
                    raise Forbidden("The trip owner's role cannot be changed", {"trip_id": trip_id})

                member, created = membership_service.assign(trip_id, user_id, role, db)
                notifications = []
                if created:
                    notifications.append(notification_service.create_notification(
                        recipient_id=user_id,
                        sender_id=caller_id,
                        reference_id=str(trip_id),
                        notification_type=NotificationType.TRIP_INVITE,
                        message="added you to a trip",
                        db=db,
                    ))
                    owner = membership_service.get_owner(trip_id, db)
                    if owner and owner.user_id not in (caller_id, user_id):
                        notifications.append(notification_service.create_notification(
                            recipient_id=owner.user_id,
                            sender_id=caller_id,
                            reference_id=str(trip_id),
                            notification_type=NotificationType.MEMBER_JOINED,
                            message=f"added {user_id} to your trip",
                            db=db,
                        ))
            db.refresh(member)

            logger.info("Member %s %s on trip %s as %s by %s", user_id,
                        "added" if created else "updated", trip_id, member.role.value, caller_id)
            self._publish(trip_id, EventType.MEMBERSHIP_CHANGED, {
                "action": "added" if created else "role_changed",
                "user_id": user_id,
                "role": member.role.value,
                "actor": caller_id,
            }, membership_service.member_ids(trip_id, db))
            for notification in notifications:
                self._publish(None, EventType.INBOX_CHANGED,
                              {"action": "created", "notification_id": notification.id},
                              [notification.recipient_id])
            return member

    def remove_member(self, trip_id: int, caller_id: str, user_id: str, db: Session) -> None:
        with self.locks.hold(trip_id):
            with self._transaction(db):
                membership_service.authorize(trip_id, caller_id, Action.MANAGE_MEMBERS, db)
                recipients = membership_service.member_ids(trip_id, db)
                membership_service.revoke(trip_id, user_id, db)
            logger.info("Member %s removed from trip %s by %s", user_id, trip_id, caller_id)
            self._publish(trip_id, EventType.MEMBERSHIP_CHANGED, {
                "action": "removed",
                "user_id": user_id,
                "actor": caller_id,
            }, recipients)

    # Expenses

    def _expense_event(self, trip_id: int, action: str, expense_id: int, caller_id: str, db: Session):
        self._publish(trip_id, EventType.EXPENSE_CHANGED, {
            "action": action,
            "expense_id": expense_id,
            "actor": caller_id,
        }, membership_service.member_ids(trip_id, db))

    def create_expense(self, trip_id: int, caller_id: str, data: ExpenseCreate, db: Session) -> Expense:
        with self.locks.hold(trip_id):
            with self._transaction(db):
                membership_service.authorize(trip_id, caller_id, Action.EDIT_TRIP_CONTENT, db)
                expense = expense_service.create_expense(trip_id, data, caller_id, db)
            logger.info("Expense %s created on trip %s by %s", expense.id, trip_id, caller_id)
            self._expense_event(trip_id, "created", expense.id, caller_id, db)
            return expense_service.get_expense(trip_id, expense.id, db)

    def update_expense(self, trip_id: int, expense_id: int, caller_id: str, data: ExpenseCreate,
                       db: Session) -> Expense:
        with self.locks.hold(trip_id):
            with self._transaction(db):
                membership_service.authorize(trip_id, caller_id, Action.EDIT_TRIP_CONTENT, db)
                expense_service.update_expense(trip_id, expense_id, data, caller_id, db)
            logger.info("Expense %s updated on trip %s by %s", expense_id, trip_id, caller_id)
            self._expense_event(trip_id, "updated", expense_id, caller_id, db)
            return expense_service.get_expense(trip_id, expense_id, db)

    def delete_expense(self, trip_id: int, expense_id: int, caller_id: str, db: Session) -> None:
        with self.locks.hold(trip_id):
            with self._transaction(db):
                membership_service.authorize(trip_id, caller_id, Action.EDIT_TRIP_CONTENT, db)
                expense_service.delete_expense(trip_id, expense_id, db)
            logger.info("Expense %s deleted on trip %s by %s", expense_id, trip_id, caller_id)
            self._expense_event(trip_id, "deleted", expense_id, caller_id, db)

    def settle_expense(self, trip_id: int, expense_id: int, caller_id: str, db: Session) -> Expense:
        with self.locks.hold(trip_id):
            with self._transaction(db):
                membership_service.authorize(trip_id, caller_id, Action.EDIT_TRIP_CONTENT, db)
                expense_service.settle_expense(trip_id, expense_id, db)
            logger.info("Expense %s settled on trip %s by %s", expense_id, trip_id, caller_id)
            self._expense_event(trip_id, "settled", expense_id, caller_id, db)
            return expense_service.get_expense(trip_id, expense_id, db)

    # Inbox

    def mark_notification_read(self, notification_id: int, caller_id: str, db: Session) -> Notification:
        with self._transaction(db):
            notification = notification_service.mark_read(notification_id, caller_id, db)
        db.refresh(notification)
        self._publish(None, EventType.INBOX_CHANGED,
                      {"action": "read", "notification_id": notification_id}, [caller_id])
        return notification

    def mark_all_notifications_read(self, caller_id: str, db: Session) -> int:
        with self._transaction(db):
            changed = notification_service.mark_all_read(caller_id, db)
        if changed:
            self._publish(None, EventType.INBOX_CHANGED, {"action": "read_all"}, [caller_id])
        return changed


gateway = MutationGateway(hub, trip_locks)
