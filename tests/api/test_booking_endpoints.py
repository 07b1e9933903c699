"""
Tests de los endpoints de reservas, lista de espera y reservas recurrentes.
"""

from datetime import timedelta

from app.core.clock import get_now
from app.main import app

API = "/api/v1"
NEXT_MONDAY = "2025-06-09"


def booking_payload(class_id, **kwargs):
    return {"class_id": class_id, "date": NEXT_MONDAY, **kwargs}


class TestCatalogEndpoints:

    def test_list_and_get_classes(self, client, spin_class):
        response = client.get(f"{API}/classes")
        assert response.status_code == 200
        classes = response.json()
        assert [c["name"] for c in classes] == ["Spinning"]
        assert len(classes[0]["schedules"]) == 2

        response = client.get(f"{API}/classes/{spin_class.id}")
        assert response.status_code == 200
        assert response.json()["capacity"] == 2

    def test_missing_class(self, client):
        response = client.get(f"{API}/classes/999")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_availability(self, client, spin_class, headers):
        client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(1))

        response = client.get(f"{API}/availability", params={"class_id": spin_class.id, "date": NEXT_MONDAY})
        assert response.status_code == 200
        data = response.json()
        assert data["booked_count"] == 1
        assert data["available_spots"] == 1
        assert data["can_book"] is True

    def test_availability_for_day_without_session(self, client, spin_class):
        response = client.get(f"{API}/availability", params={"class_id": spin_class.id, "date": "2025-06-10"})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_slot"


class TestBookingEndpoints:

    def test_identity_header_required(self, client, spin_class):
        response = client.post(f"{API}/bookings", json=booking_payload(spin_class.id))
        assert response.status_code == 401

        response = client.post(
            f"{API}/bookings", json=booking_payload(spin_class.id), headers={"X-Member-ID": "abc"}
        )
        assert response.status_code == 401

    def test_book_then_waitlist(self, client, spin_class, headers):
        first = client.post(f"{API}/bookings", json=booking_payload(spin_class.id, start_time="18:00"), headers=headers(1))
        assert first.status_code == 201
        assert first.json()["type"] == "booking"
        assert first.json()["booking"]["status"] == "confirmed"
        assert first.headers["X-Process-Time"].endswith("ms")

        duplicate = client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(1))
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "already_booked"

        client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(2))
        waitlisted = client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(3))
        assert waitlisted.status_code == 201
        assert waitlisted.json()["type"] == "waitlist"
        assert waitlisted.json()["position"] == 1

        full = client.post(
            f"{API}/bookings", json=booking_payload(spin_class.id, waitlist_if_full=False), headers=headers(4)
        )
        assert full.status_code == 409
        assert full.json()["code"] == "session_full"

    def test_invalid_time_format(self, client, spin_class, headers):
        response = client.post(
            f"{API}/bookings", json=booking_payload(spin_class.id, start_time="6pm"), headers=headers(1)
        )
        assert response.status_code == 422

    def test_my_bookings_and_get(self, client, spin_class, headers):
        created = client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(1)).json()
        booking_id = created["booking"]["id"]

        response = client.get(f"{API}/bookings/my-bookings", headers=headers(1))
        assert response.status_code == 200
        assert [b["id"] for b in response.json()["upcoming"]] == [booking_id]

        assert client.get(f"{API}/bookings/{booking_id}", headers=headers(1)).status_code == 200
        assert client.get(f"{API}/bookings/{booking_id}", headers=headers(2)).status_code == 403
        assert client.get(f"{API}/bookings/{booking_id}", headers=headers(50, "trainer")).status_code == 200

    def test_staff_listing(self, client, spin_class, headers):
        client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(1))

        assert client.get(f"{API}/bookings", headers=headers(1)).status_code == 403
        response = client.get(f"{API}/bookings", params={"status": "confirmed"}, headers=headers(50, "admin"))
        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_cancel_promotes_and_offer_is_accepted(self, client, spin_class, headers):
        first = client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(1)).json()
        client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(2))
        client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(3))

        cancelled = client.delete(
            f"{API}/bookings/{first['booking']['id']}", params={"reason": "viaje"}, headers=headers(1)
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["cancellation_reason"] == "viaje"

        entries = client.get(f"{API}/waitlist", headers=headers(3)).json()
        assert len(entries) == 1
        assert entries[0]["status"] == "offered"
        assert entries[0]["position"] is None

        accepted = client.post(f"{API}/waitlist/{entries[0]['id']}/accept", headers=headers(3))
        assert accepted.status_code == 201
        assert accepted.json()["waitlist_entry_id"] == entries[0]["id"]

        again = client.delete(f"{API}/bookings/{first['booking']['id']}", headers=headers(1))
        assert again.status_code == 409
        assert again.json()["code"] == "already_cancelled"


class TestWaitlistEndpoints:

    def test_join_position_and_leave(self, client, spin_class, headers):
        client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(1))

        early = client.post(f"{API}/waitlist/join", json=booking_payload(spin_class.id), headers=headers(3))
        assert early.status_code == 409
        assert early.json()["code"] == "invalid_state"

        client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(2))
        joined = client.post(f"{API}/waitlist/join", json=booking_payload(spin_class.id), headers=headers(3))
        assert joined.status_code == 201
        entry_id = joined.json()["id"]

        position = client.get(f"{API}/waitlist/{entry_id}/position", headers=headers(3))
        assert position.json() == {"entry_id": entry_id, "status": "waiting", "position": 1}

        assert client.delete(f"{API}/waitlist/{entry_id}", headers=headers(4)).status_code == 403
        left = client.delete(f"{API}/waitlist/{entry_id}", headers=headers(3))
        assert left.status_code == 200
        assert left.json()["status"] == "expired"

    def test_expired_offer(self, client, spin_class, headers, now):
        first = client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(1)).json()
        client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(2))
        waiting = client.post(f"{API}/bookings", json=booking_payload(spin_class.id), headers=headers(3)).json()
        client.delete(f"{API}/bookings/{first['booking']['id']}", headers=headers(1))

        async def later():
            return now + timedelta(hours=25)

        app.dependency_overrides[get_now] = later
        entry_id = waiting["waitlist_entry"]["id"]
        response = client.post(f"{API}/waitlist/{entry_id}/accept", headers=headers(3))
        assert response.status_code == 410
        assert response.json()["code"] == "offer_expired"

        # La lectura de la lista caduca las ofertas vencidas
        assert client.get(f"{API}/waitlist", headers=headers(3)).json() == []


class TestRecurringEndpoints:

    def test_create_list_cancel(self, client, spin_class, headers):
        response = client.post(
            f"{API}/recurring-bookings",
            json={
                "class_id": spin_class.id,
                "recurrence_type": "weekly",
                "recurrence_day": "monday",
                "start_date": "2025-06-02",
                "end_date": "2025-06-16",
                "start_time": "18:00",
                "end_time": "19:00",
            },
            headers=headers(1),
        )
        assert response.status_code == 201
        result = response.json()
        assert result["booked_count"] == 3
        assert result["recurring_booking"]["recurrence_day"] == "Monday"
        template_id = result["recurring_booking"]["id"]

        listed = client.get(f"{API}/recurring-bookings", headers=headers(1)).json()
        assert [t["id"] for t in listed] == [template_id]

        cancelled = client.delete(f"{API}/recurring-bookings/{template_id}", headers=headers(1))
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

    def test_invalid_recurrence(self, client, spin_class, headers):
        response = client.post(
            f"{API}/recurring-bookings",
            json={
                "class_id": spin_class.id,
                "recurrence_day": "Funday",
                "start_date": "2025-06-02",
                "end_date": "2025-06-16",
                "start_time": "18:00",
                "end_time": "19:00",
            },
            headers=headers(1),
        )
        assert response.status_code == 422
