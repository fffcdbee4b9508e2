"""Tests for the atomic appointment commit."""

import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from slotbook.core.exceptions import (
    AppointmentAlreadyCancelled,
    AppointmentNotFound,
    ClientInfoValidationError,
    SlotUnavailableError,
)
from slotbook.core.security import Identity
from slotbook.models import Appointment, AppointmentStatus, AvailableSlot, SlotStatus
from slotbook.services.booking_service import BookingService
from slotbook.services.slot_service import SlotService


async def count_appointments(session_factory) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count(Appointment.id)))).scalar_one()


class TestCommitAppointment:
    async def test_commit_reserves_slot(self, session_factory, catalog, identity, valid_client_info):
        async with session_factory() as db:
            appointment = await BookingService(db).commit_appointment(
                catalog.s1, valid_client_info, identity
            )

        assert appointment.slot_id == catalog.s1
        assert appointment.professional_code == "ana-lopez"
        assert appointment.booked_by_user_id == "user-juan"
        assert appointment.client_info.phone == "555-123-4567"
        assert appointment.appointment_datetime == catalog.s1_datetime

        async with session_factory() as db:
            slot = await db.get(AvailableSlot, uuid.UUID(catalog.s1))
            assert slot.status == SlotStatus.RESERVED.value
            assert slot.reserved_at is not None
            listing = await SlotService(db).list_professionals_with_available_slots()

        assert catalog.s1 not in [s.id for entry in listing for s in entry.slots]

    async def test_second_commit_conflicts(self, session_factory, catalog, identity, valid_client_info):
        async with session_factory() as db:
            await BookingService(db).commit_appointment(catalog.s1, valid_client_info, identity)

        other = Identity(user_id="user-maria", email="maria@x.com")
        async with session_factory() as db:
            with pytest.raises(SlotUnavailableError) as exc:
                await BookingService(db).commit_appointment(catalog.s1, valid_client_info, other)

        assert exc.value.slot_id == catalog.s1
        assert await count_appointments(session_factory) == 1

    async def test_concurrent_commits_one_winner(self, session_factory, catalog, valid_client_info):
        """Two visitors racing for one slot: exactly one success, one conflict."""
        juan = Identity(user_id="user-juan", email="juan@x.com")
        maria = Identity(user_id="user-maria", email="maria@x.com")

        async def attempt(identity):
            async with session_factory() as db:
                return await BookingService(db).commit_appointment(catalog.s1, valid_client_info, identity)

        results = await asyncio.gather(attempt(juan), attempt(maria), return_exceptions=True)

        successes = [r for r in results if not isinstance(r, BaseException)]
        conflicts = [r for r in results if isinstance(r, SlotUnavailableError)]
        assert len(successes) == 1
        assert len(conflicts) == 1
        assert await count_appointments(session_factory) == 1

    @pytest.mark.parametrize(
        "slot_attr", ["reserved", "deleted", "too_soon", "no_code_slot", "inactive_slot"]
    )
    async def test_unbookable_slots(self, session_factory, catalog, identity, valid_client_info, slot_attr):
        async with session_factory() as db:
            with pytest.raises(SlotUnavailableError):
                await BookingService(db).commit_appointment(
                    getattr(catalog, slot_attr), valid_client_info, identity
                )
        assert await count_appointments(session_factory) == 0

    async def test_unknown_slot(self, session_factory, catalog, identity, valid_client_info):
        async with session_factory() as db:
            with pytest.raises(SlotUnavailableError):
                await BookingService(db).commit_appointment("not-a-uuid", valid_client_info, identity)
            with pytest.raises(SlotUnavailableError):
                await BookingService(db).commit_appointment(
                    "00000000-0000-0000-0000-000000000000", valid_client_info, identity
                )

    async def test_invalid_client_info_leaves_slot_open(self, session_factory, catalog, identity, valid_client_info):
        async with session_factory() as db:
            with pytest.raises(ClientInfoValidationError) as exc:
                await BookingService(db).commit_appointment(
                    catalog.s1, {**valid_client_info, "phone": "123"}, identity
                )
            assert "phone" in exc.value.field_errors
            slot = await db.get(AvailableSlot, uuid.UUID(catalog.s1))
            assert slot.status == SlotStatus.AVAILABLE.value


class TestHistory:
    async def test_history_is_per_identity(self, session_factory, catalog, identity, valid_client_info):
        async with session_factory() as db:
            service = BookingService(db)
            first = await service.commit_appointment(catalog.s1, valid_client_info, identity)
            await service.commit_appointment(
                catalog.s2, valid_client_info, Identity(user_id="user-maria", email="maria@x.com")
            )

            mine = await service.get_my_appointments("user-juan")
            assert [a.id for a in mine] == [first.id]
            assert (await service.get_appointment(first.id, "user-juan")).slot_id == catalog.s1
            assert await service.get_appointment(first.id, "user-maria") is None
            assert await service.get_appointment("bogus", "user-juan") is None


class TestCancelAppointment:
    async def test_cancel_releases_slot(self, session_factory, catalog, identity, valid_client_info):
        async with session_factory() as db:
            booked = await BookingService(db).commit_appointment(catalog.s1, valid_client_info, identity)

        async with session_factory() as db:
            cancelled = await BookingService(db).cancel_appointment(booked.id, "user-juan")

        assert cancelled.status == AppointmentStatus.CANCELLED.value
        assert cancelled.cancelled_at is not None

        async with session_factory() as db:
            slot = await db.get(AvailableSlot, uuid.UUID(catalog.s1))
            assert slot.status == SlotStatus.AVAILABLE.value
            assert slot.reserved_at is None
            listing = await SlotService(db).list_professionals_with_available_slots()

        assert catalog.s1 in [s.id for entry in listing for s in entry.slots]

    async def test_released_slot_can_be_booked_again(self, session_factory, catalog, identity, valid_client_info):
        """The cancelled appointment stays in history next to the new one."""
        async with session_factory() as db:
            service = BookingService(db)
            first = await service.commit_appointment(catalog.s1, valid_client_info, identity)
            await service.cancel_appointment(first.id, "user-juan")

        maria = Identity(user_id="user-maria", email="maria@x.com")
        async with session_factory() as db:
            second = await BookingService(db).commit_appointment(catalog.s1, valid_client_info, maria)

        assert second.slot_id == catalog.s1
        assert second.id != first.id
        assert await count_appointments(session_factory) == 2

        async with session_factory() as db:
            mine = await BookingService(db).get_my_appointments("user-juan")
        assert [(a.id, a.status) for a in mine] == [(first.id, AppointmentStatus.CANCELLED.value)]

    async def test_cancel_twice(self, session_factory, catalog, identity, valid_client_info):
        async with session_factory() as db:
            service = BookingService(db)
            booked = await service.commit_appointment(catalog.s1, valid_client_info, identity)
            await service.cancel_appointment(booked.id, "user-juan")

            with pytest.raises(AppointmentAlreadyCancelled):
                await service.cancel_appointment(booked.id, "user-juan")

    async def test_only_owner_can_cancel(self, session_factory, catalog, identity, valid_client_info):
        async with session_factory() as db:
            service = BookingService(db)
            booked = await service.commit_appointment(catalog.s1, valid_client_info, identity)

            with pytest.raises(AppointmentNotFound):
                await service.cancel_appointment(booked.id, "user-maria")
            with pytest.raises(AppointmentNotFound):
                await service.cancel_appointment("bogus", "user-juan")

        async with session_factory() as db:
            slot = await db.get(AvailableSlot, uuid.UUID(catalog.s1))
            assert slot.status == SlotStatus.RESERVED.value
