"""
Unit tests for booking endpoints
"""
import threading
import pytest
from fastapi import status
from datetime import date
from app.core.notification_manager import notification_manager
from app.models.models import ActivityLog, AvailableSlot, Booking
from app.utils import slot_manager


BOOKING_PAYLOAD = {
    "name": "Maria Garcia",
    "email": "maria@example.com",
    "phone": "+34 611 222 333",
    "date": "2025-11-10",
    "time": "09:30",
    "notes": "First visit"
}


@pytest.mark.unit
class TestPublicBooking:
    """Tests for the public booking form"""

    def test_create_booking_success(self, client, open_day):
        """Test successful booking creation"""
        response = client.post("/api/v1/bookings/", json=BOOKING_PAYLOAD)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()["booking"]
        assert data["name"] == "Maria Garcia"
        assert data["date"] == "2025-11-10"
        assert data["time"] == "09:30"
        assert data["status"] == "confirmed"
        assert data["source"] == "web"
        assert data["notes"] == "First visit"

    def test_create_booking_slot_taken(self, client, test_booking):
        """The only place at 09:00 is already booked"""
        response = client.post("/api/v1/bookings/", json={**BOOKING_PAYLOAD, "time": "09:00"})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["code"] == "slot_unavailable"
        assert "error" in response.json()

    def test_create_booking_validation_error(self, client, open_day):
        response = client.post("/api/v1/bookings/", json={**BOOKING_PAYLOAD, "email": "maria"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["code"] == "validation_error"
        assert data["field"] == "email"

    def test_create_booking_missing_field(self, client, open_day):
        payload = {key: value for key, value in BOOKING_PAYLOAD.items() if key != "phone"}

        response = client.post("/api/v1/bookings/", json=payload)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["field"] == "phone"

    def test_create_booking_in_the_past(self, client, db):
        response = client.post("/api/v1/bookings/", json={**BOOKING_PAYLOAD, "date": "2025-11-08"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "past_time"
        assert db.query(Booking).count() == 0

    def test_create_booking_on_closed_day(self, client, db):
        response = client.post("/api/v1/bookings/", json={**BOOKING_PAYLOAD, "date": "2025-11-20"})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["code"] == "slot_unavailable"

    def test_create_booking_updates_public_availability(self, client, open_day):
        client.post("/api/v1/bookings/", json=BOOKING_PAYLOAD)

        response = client.get("/api/v1/slots/available", params={"date": "2025-11-10"})

        slots = {slot["time"]: slot for slot in response.json()["slots"]}
        assert slots["09:30"]["available"] is False
        assert slots["09:00"]["available"] is True

    def test_create_booking_notifies_admins(self, client, open_day):
        queue = notification_manager.connect(999)
        try:
            client.post("/api/v1/bookings/", json=BOOKING_PAYLOAD)

            notification = queue.get_nowait()
            assert notification["notification_type"] == "booking_created"
            assert notification["booking"]["time"] == "09:30"
        finally:
            notification_manager.disconnect(999, queue)

    def test_admission_runs_off_the_event_loop(self, client, open_day, monkeypatch):
        """Database work runs in the threadpool, the notification push on the loop"""
        threads = {}
        admit_booking = slot_manager.admit_booking

        def recording_admit(*args, **kwargs):
            threads["admit"] = threading.get_ident()
            return admit_booking(*args, **kwargs)

        async def recording_send(notification):
            threads["notify"] = threading.get_ident()
            return 0

        monkeypatch.setattr(slot_manager, "admit_booking", recording_admit)
        monkeypatch.setattr(notification_manager, "send_to_admins", recording_send)

        response = client.post("/api/v1/bookings/", json=BOOKING_PAYLOAD)

        assert response.status_code == status.HTTP_201_CREATED
        assert threads["admit"] != threads["notify"]


@pytest.mark.unit
class TestAdminBookingCreation:
    """Tests for bookings entered by the back office"""

    def test_create_booking_for_customer(self, client, db, open_day, auth_headers):
        response = client.post(
            "/api/v1/bookings/admin",
            headers=auth_headers,
            json={**BOOKING_PAYLOAD, "source": "whatsapp"}
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["booking"]["source"] == "whatsapp"
        assert db.query(ActivityLog).filter(ActivityLog.action == "created").count() == 1

    def test_admin_booking_respects_capacity(self, client, test_booking, auth_headers):
        response = client.post(
            "/api/v1/bookings/admin",
            headers=auth_headers,
            json={**BOOKING_PAYLOAD, "time": "09:00", "source": "phone"}
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_admin_booking_invalid_source(self, client, open_day, auth_headers):
        response = client.post(
            "/api/v1/bookings/admin",
            headers=auth_headers,
            json={**BOOKING_PAYLOAD, "source": "fax"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["field"] == "source"

    def test_admin_booking_unauthorized(self, client, open_day):
        response = client.post("/api/v1/bookings/admin", json=BOOKING_PAYLOAD)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.unit
class TestBookingList:
    """Tests for the back office booking list"""

    def test_list_requires_auth(self, client):
        response = client.get("/api/v1/bookings/")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_list_bookings(self, client, test_booking, auth_headers):
        response = client.get("/api/v1/bookings/", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 1
        assert data["bookings"][0]["name"] == "Ana Lopez"

    def test_staff_can_list(self, client, test_booking, staff_headers):
        response = client.get("/api/v1/bookings/", headers=staff_headers)

        assert response.status_code == status.HTTP_200_OK

    def test_list_filters_and_search(self, client, db, test_booking, auth_headers):
        db.add(Booking(
            name="Luis Perez", email="luis@example.com", phone="622000111",
            date=date(2025, 11, 12), time="10:00", status="cancelled", source="phone"
        ))
        db.commit()

        by_status = client.get("/api/v1/bookings/", headers=auth_headers, params={"status": "cancelled"}).json()
        by_date = client.get("/api/v1/bookings/", headers=auth_headers, params={"date": "2025-11-10"}).json()
        by_search = client.get("/api/v1/bookings/", headers=auth_headers, params={"search": "luis"}).json()

        assert [b["name"] for b in by_status["bookings"]] == ["Luis Perez"]
        assert [b["name"] for b in by_date["bookings"]] == ["Ana Lopez"]
        assert by_search["total"] == 1

    def test_list_latest_date_first_and_paginated(self, client, db, test_booking, auth_headers):
        db.add(Booking(
            name="Luis Perez", email="luis@example.com", phone="622000111",
            date=date(2025, 11, 12), time="10:00", status="confirmed", source="phone"
        ))
        db.commit()

        response = client.get("/api/v1/bookings/", headers=auth_headers, params={"per_page": 1})

        data = response.json()
        assert data["total"] == 2
        assert data["total_pages"] == 2
        assert data["bookings"][0]["name"] == "Luis Perez"

    def test_list_invalid_date_filter(self, client, auth_headers):
        response = client.get("/api/v1/bookings/", headers=auth_headers, params={"date": "tomorrow"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_updates_since_cursor(self, client, test_booking, auth_headers):
        first = client.get("/api/v1/bookings/updates", headers=auth_headers)

        assert first.status_code == status.HTTP_200_OK
        data = first.json()
        assert [b["id"] for b in data["bookings"]] == [test_booking.id]
        assert data["upcoming_confirmed"] == 1

        second = client.get(
            "/api/v1/bookings/updates",
            headers=auth_headers,
            params={"since": data["server_time"]}
        )
        assert second.json()["bookings"] == []


@pytest.mark.unit
class TestBookingEdit:
    """Tests for reading, editing and deleting a booking"""

    def test_get_booking(self, client, test_booking, auth_headers):
        response = client.get(f"/api/v1/bookings/{test_booking.id}", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["email"] == "ana@example.com"

    def test_get_booking_not_found(self, client, auth_headers):
        response = client.get("/api/v1/bookings/99999", headers=auth_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_cancel_reopens_slot(self, client, db, test_booking, auth_headers):
        response = client.put(
            f"/api/v1/bookings/{test_booking.id}",
            headers=auth_headers,
            json={"status": "cancelled"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "cancelled"

        slots = client.get("/api/v1/slots/available", params={"date": "2025-11-10"}).json()["slots"]
        assert slots[0]["available"] is True

        log = db.query(ActivityLog).filter(ActivityLog.action == "updated").first()
        assert "confirmed -> cancelled" in log.description

    def test_reconfirm_into_taken_slot(self, client, test_booking, auth_headers):
        client.put(f"/api/v1/bookings/{test_booking.id}", headers=auth_headers, json={"status": "cancelled"})
        client.post("/api/v1/bookings/", json={**BOOKING_PAYLOAD, "time": "09:00"})

        response = client.put(
            f"/api/v1/bookings/{test_booking.id}",
            headers=auth_headers,
            json={"status": "confirmed"}
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["code"] == "slot_unavailable"

    def test_move_booking(self, client, db, test_booking, auth_headers):
        response = client.put(
            f"/api/v1/bookings/{test_booking.id}",
            headers=auth_headers,
            json={"time": "09:30"}
        )

        assert response.status_code == status.HTTP_200_OK
        slot = db.query(AvailableSlot).filter(AvailableSlot.time == "09:30").first()
        assert slot.current_bookings == 1

    def test_update_not_found(self, client, auth_headers):
        response = client.put("/api/v1/bookings/99999", headers=auth_headers, json={"status": "cancelled"})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_delete_booking(self, client, db, test_booking, auth_headers):
        booking_id = test_booking.id

        response = client.delete(f"/api/v1/bookings/{booking_id}", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert db.query(Booking).count() == 0
        log = db.query(ActivityLog).filter(ActivityLog.action == "deleted").first()
        assert log.entity_id == booking_id

    def test_delete_booking_unauthorized(self, client, test_booking):
        response = client.delete(f"/api/v1/bookings/{test_booking.id}")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
