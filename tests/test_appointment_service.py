"""
Tests for services/appointment_service.py

Booking rules, cancellation rules and the listing query, with a fixed clock.
"""
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.models.appointment import ACTIVE_SLOT_INDEX, Appointment
from app.models.notification import Notification
from app.services import appointment_service
from app.services.appointment_service import (
    AlreadyCanceledError,
    AppointmentNotFoundError,
    CancellationWindowError,
    NotAProviderError,
    NotAppointmentOwnerError,
    PastDateError,
    SelfBookingError,
    SlotUnavailableError,
    cancel_appointment,
    create_appointment,
    list_appointments_for_user,
)
from tests.base import DatabaseTestCase

NOW = datetime(2025, 2, 1, 12, 0, 0)


class TestCreateAppointment(DatabaseTestCase):
    """Tests for the booking rules."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.client = await self.create_user("Ana")
        self.other_client = await self.create_user("Bruno")
        self.provider = await self.create_user("Carla", provider=True)

    async def _notifications(self) -> list[Notification]:
        result = await self.session.execute(select(Notification))
        return list(result.scalars().all())

    async def test_create_truncates_date_and_notifies_provider(self):
        """Booking at 14:30 is stored at 14:00 and the provider gets a notification."""
        appointment = await create_appointment(
            self.session, self.client.id, self.provider.id, datetime(2025, 3, 1, 14, 30), now=NOW
        )
        await self.session.commit()

        self.assertIsNotNone(appointment.id)
        self.assertEqual(appointment.user_id, self.client.id)
        self.assertEqual(appointment.provider_id, self.provider.id)
        self.assertEqual(appointment.date, datetime(2025, 3, 1, 14, 0))
        self.assertIsNone(appointment.canceled_at)

        notifications = await self._notifications()
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].user_id, self.provider.id)
        self.assertEqual(
            notifications[0].content,
            "New booking from Ana for dia 01 de março, às 14:00h",
        )

    async def test_notification_uses_requester_locale(self):
        client = await self.create_user("Dana", locale="en-US")
        await create_appointment(
            self.session, client.id, self.provider.id, datetime(2025, 3, 1, 15, 0), now=NOW
        )

        notifications = await self._notifications()
        self.assertEqual(
            notifications[0].content, "New booking from Dana for March 01, at 3:00 PM"
        )

    async def test_second_booking_in_same_hour_is_rejected(self):
        """14:30 and 14:10 both truncate to 14:00 and collide."""
        await create_appointment(
            self.session, self.client.id, self.provider.id, datetime(2025, 3, 1, 14, 30), now=NOW
        )
        await self.session.commit()

        with self.assertRaises(SlotUnavailableError) as ctx:
            await create_appointment(
                self.session, self.other_client.id, self.provider.id,
                datetime(2025, 3, 1, 14, 10), now=NOW,
            )
        self.assertEqual(ctx.exception.message, "Appointment date is not available")
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_canceled_slot_can_be_booked_again(self):
        await self.create_appointment_row(
            self.client, self.provider, datetime(2025, 3, 1, 14, 0), canceled_at=NOW
        )

        appointment = await create_appointment(
            self.session, self.other_client.id, self.provider.id,
            datetime(2025, 3, 1, 14, 0), now=NOW,
        )
        self.assertEqual(appointment.date, datetime(2025, 3, 1, 14, 0))

    async def test_same_hour_with_other_provider_is_free(self):
        other_provider = await self.create_user("Elisa", provider=True)
        await self.create_appointment_row(self.client, self.provider, datetime(2025, 3, 1, 14, 0))

        appointment = await create_appointment(
            self.session, self.other_client.id, other_provider.id,
            datetime(2025, 3, 1, 14, 0), now=NOW,
        )
        self.assertEqual(appointment.provider_id, other_provider.id)

    async def test_self_booking_is_rejected(self):
        provider_id = self.provider.id
        with self.assertRaises(SelfBookingError) as ctx:
            await create_appointment(
                self.session, provider_id, provider_id, datetime(2025, 3, 1, 14, 0), now=NOW
            )
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.message, "You can not create appointments for you")

    async def test_self_booking_is_checked_before_date(self):
        """Self-booking wins even when the date is also in the past."""
        with self.assertRaises(SelfBookingError):
            await create_appointment(
                self.session, self.provider.id, self.provider.id, datetime(2020, 1, 1), now=NOW
            )

    async def test_booking_a_non_provider_is_rejected(self):
        with self.assertRaises(NotAProviderError) as ctx:
            await create_appointment(
                self.session, self.client.id, self.other_client.id,
                datetime(2025, 3, 1, 14, 0), now=NOW,
            )
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(
            ctx.exception.message, "You can only create appointments with providers"
        )

    async def test_booking_unknown_user_is_rejected(self):
        with self.assertRaises(NotAProviderError):
            await create_appointment(
                self.session, self.client.id, 9999, datetime(2025, 3, 1, 14, 0), now=NOW
            )

    async def test_past_date_is_rejected(self):
        with self.assertRaises(PastDateError) as ctx:
            await create_appointment(
                self.session, self.client.id, self.provider.id,
                NOW - timedelta(days=1), now=NOW,
            )
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.message, "Past date is not permitted")

    async def test_current_hour_counts_as_past(self):
        """12:40 truncates to 12:00, which is before 12:10."""
        with self.assertRaises(PastDateError):
            await create_appointment(
                self.session, self.client.id, self.provider.id,
                datetime(2025, 2, 1, 12, 40), now=datetime(2025, 2, 1, 12, 10),
            )

    async def test_aware_dates_are_converted_to_utc(self):
        aware = datetime(2025, 3, 1, 8, 45, tzinfo=timezone(timedelta(hours=-3)))
        appointment = await create_appointment(
            self.session, self.client.id, self.provider.id, aware, now=NOW
        )
        self.assertEqual(appointment.date, datetime(2025, 3, 1, 11, 0))

    async def test_concurrent_insert_maps_to_slot_unavailable(self):
        """The unique index catches a booking the availability check did not see."""
        client_id, provider_id = self.other_client.id, self.provider.id
        await self.create_appointment_row(self.client, self.provider, datetime(2025, 3, 1, 14, 0))

        with patch.object(appointment_service, "find_active_appointment_at", return_value=None):
            with self.assertRaises(SlotUnavailableError):
                await create_appointment(
                    self.session, client_id, provider_id, datetime(2025, 3, 1, 14, 5), now=NOW
                )

        result = await self.session.execute(select(Appointment))
        self.assertEqual(len(result.scalars().all()), 1)
        self.assertEqual(await self._notifications(), [])


class TestCancelAppointment(DatabaseTestCase):
    """Tests for the cancellation rules."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.client = await self.create_user("Ana")
        self.stranger = await self.create_user("Bruno")
        self.provider = await self.create_user("Carla", provider=True)
        self.appointment = await self.create_appointment_row(
            self.client, self.provider, datetime(2025, 2, 1, 18, 0)
        )

    async def test_owner_cancels_in_advance(self):
        appointment = await cancel_appointment(
            self.session, self.appointment.id, self.client.id, now=NOW
        )
        self.assertEqual(appointment.canceled_at, NOW)

    async def test_cancel_frees_the_slot_in_listing(self):
        await cancel_appointment(self.session, self.appointment.id, self.client.id, now=NOW)
        await self.session.commit()

        rows = await list_appointments_for_user(self.session, self.client.id)
        self.assertEqual(rows, [])

    async def test_exactly_at_cutoff_is_allowed(self):
        """Cancelling at 16:00 for an 18:00 appointment is still in time."""
        appointment = await cancel_appointment(
            self.session, self.appointment.id, self.client.id, now=datetime(2025, 2, 1, 16, 0)
        )
        self.assertIsNotNone(appointment.canceled_at)

    async def test_inside_cutoff_is_rejected(self):
        with self.assertRaises(CancellationWindowError) as ctx:
            await cancel_appointment(
                self.session, self.appointment.id, self.client.id,
                now=datetime(2025, 2, 1, 16, 1),
            )
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(
            ctx.exception.message, "You can only cancel appointments 2 hours in advance."
        )

    async def test_cutoff_follows_settings(self):
        with patch.object(settings, "cancellation_cutoff_hours", 8):
            with self.assertRaises(CancellationWindowError) as ctx:
                await cancel_appointment(
                    self.session, self.appointment.id, self.client.id, now=NOW
                )
        self.assertIn("8 hours", ctx.exception.message)

    async def test_non_owner_is_rejected(self):
        with self.assertRaises(NotAppointmentOwnerError) as ctx:
            await cancel_appointment(self.session, self.appointment.id, self.stranger.id, now=NOW)
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(
            ctx.exception.message, "You don't have permission to cancel this appointment."
        )

    async def test_provider_cannot_cancel_for_client(self):
        with self.assertRaises(NotAppointmentOwnerError):
            await cancel_appointment(self.session, self.appointment.id, self.provider.id, now=NOW)

    async def test_missing_appointment(self):
        with self.assertRaises(AppointmentNotFoundError) as ctx:
            await cancel_appointment(self.session, 424242, self.client.id, now=NOW)
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_second_cancel_is_rejected(self):
        await cancel_appointment(self.session, self.appointment.id, self.client.id, now=NOW)
        with self.assertRaises(AlreadyCanceledError):
            await cancel_appointment(
                self.session, self.appointment.id, self.client.id,
                now=NOW + timedelta(minutes=5),
            )


class TestListAppointments(DatabaseTestCase):
    """Tests for the listing query."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.avatar = await self.create_file("avatar-carla.png")
        self.client = await self.create_user("Ana")
        self.other_client = await self.create_user("Bruno")
        self.provider = await self.create_user("Carla", provider=True, avatar=self.avatar)
        self.plain_provider = await self.create_user("Davi", provider=True)

    async def test_only_active_appointments_in_date_order(self):
        base = datetime(2025, 3, 1, 9, 0)
        await self.create_appointment_row(self.client, self.provider, base + timedelta(hours=3))
        await self.create_appointment_row(self.client, self.plain_provider, base)
        await self.create_appointment_row(
            self.client, self.provider, base + timedelta(hours=1), canceled_at=NOW
        )
        await self.create_appointment_row(self.other_client, self.provider, base + timedelta(hours=2))

        rows = await list_appointments_for_user(self.session, self.client.id)

        self.assertEqual([a.date for a, _, _ in rows], [base, base + timedelta(hours=3)])
        first, second = rows
        self.assertEqual(first[1].id, self.plain_provider.id)
        self.assertIsNone(first[2])
        self.assertEqual(second[1].id, self.provider.id)
        self.assertEqual(second[2].path, "avatar-carla.png")

    async def test_pagination_window(self):
        base = datetime(2025, 3, 1, 0, 0)
        for i in range(25):
            await self.create_appointment_row(self.client, self.provider, base + timedelta(hours=i))

        page_one = await list_appointments_for_user(self.session, self.client.id, page=1)
        page_two = await list_appointments_for_user(self.session, self.client.id, page=2)
        page_three = await list_appointments_for_user(self.session, self.client.id, page=3)

        self.assertEqual(len(page_one), 20)
        self.assertEqual(len(page_two), 5)
        self.assertEqual(page_three, [])
        self.assertEqual(page_one[0][0].date, base)
        self.assertEqual(page_two[0][0].date, base + timedelta(hours=20))

    async def test_empty_list(self):
        rows = await list_appointments_for_user(self.session, self.client.id)
        self.assertEqual(rows, [])


class _DriverError(Exception):
    def __init__(self, message: str, constraint_name: str | None = None):
        super().__init__(message)
        self.constraint_name = constraint_name


class _AdaptedError(Exception):
    """Stands in for SQLAlchemy's adapted asyncpg error wrapping the driver error."""


class TestSlotConflictDetection(unittest.TestCase):
    """Tests for recognising the active-slot unique index in IntegrityErrors."""

    @staticmethod
    def _integrity_error(orig: BaseException) -> IntegrityError:
        return IntegrityError("INSERT INTO appointments ...", {}, orig)

    def test_constraint_name_on_driver_error(self):
        orig = _DriverError("duplicate key value", constraint_name=ACTIVE_SLOT_INDEX)
        self.assertTrue(appointment_service._is_slot_conflict(self._integrity_error(orig)))

    def test_constraint_name_on_chained_cause(self):
        adapted = _AdaptedError("duplicate key value")
        adapted.__cause__ = _DriverError("duplicate key value", constraint_name=ACTIVE_SLOT_INDEX)
        self.assertTrue(appointment_service._is_slot_conflict(self._integrity_error(adapted)))

    def test_other_constraint_is_not_a_slot_conflict(self):
        orig = _DriverError(
            f"duplicate key value; mentions {ACTIVE_SLOT_INDEX} in text",
            constraint_name="appointments_user_id_fkey",
        )
        self.assertFalse(appointment_service._is_slot_conflict(self._integrity_error(orig)))

    def test_sqlite_column_list(self):
        orig = Exception("UNIQUE constraint failed: appointments.provider_id, appointments.date")
        self.assertTrue(appointment_service._is_slot_conflict(self._integrity_error(orig)))

    def test_sqlite_other_failure(self):
        orig = Exception("NOT NULL constraint failed: appointments.user_id")
        self.assertFalse(appointment_service._is_slot_conflict(self._integrity_error(orig)))


if __name__ == "__main__":
    unittest.main()
