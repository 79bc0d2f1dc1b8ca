from errors import ServiceError
from tests.conftest import make_result


def new_trip(client, headers):
    r = client.post("/trips", headers=headers)
    assert r.status_code == 200
    return r.json()


def test_root(client):
    assert client.get("/").json()["status"] == "ok"


class TestAuthEndpoints:
    def test_signup_login_me_logout(self, client):
        r = client.post("/auth/signup", json={"email": " Asha@Gmail.com", "password": "abcdef"})
        assert r.status_code == 200
        assert r.json()["user"]["email"] == "asha@gmail.com"

        r = client.post("/auth/login", json={"email": "ASHA@gmail.com ", "password": "abcdef"})
        assert r.status_code == 200
        headers = {"Authorization": f"Bearer {r.json()['access_token']}"}
        assert client.get("/auth/me", headers=headers).json()["name"] == "asha"

        assert client.post("/auth/logout", headers=headers).status_code == 200
        assert client.get("/auth/me", headers=headers).status_code == 401

    def test_error_mapping(self, client):
        r = client.post("/auth/signup", json={"email": "x@yahoo.com", "password": "abcdef"})
        assert r.status_code == 422
        assert r.json()["error"] == "ValidationError"

        r = client.post("/auth/login", json={"email": "nobody@gmail.com", "password": "abcdef"})
        assert (r.status_code, r.json()["error"]) == (404, "NotFound")

        client.post("/auth/signup", json={"email": "a@gmail.com", "password": "abcdef"})
        r = client.post("/auth/signup", json={"email": "a@gmail.com", "password": "abcdef"})
        assert (r.status_code, r.json()["error"]) == (409, "AlreadyExists")

        r = client.post("/auth/login", json={"email": "a@gmail.com", "password": "zzzzzz"})
        assert (r.status_code, r.json()["error"]) == (401, "InvalidCredential")

    def test_bad_token(self, client):
        assert client.get("/trips", headers={"Authorization": "Bearer nope"}).status_code == 401
        assert client.get("/trips").status_code in (401, 403)


class TestTripEndpoints:
    def test_new_trip_uses_language_preference(self, client, auth_headers):
        assert client.get("/preferences/language", headers=auth_headers).json() == {"lang": "en"}
        client.put("/preferences/language", json={"lang": "hi"}, headers=auth_headers)
        trip = new_trip(client, auth_headers)
        assert trip["title"] == "नई यात्रा"
        assert trip["days"][0]["dayNumber"] == 1

    def test_list_newest_first_and_filters(self, client, auth_headers):
        first = new_trip(client, auth_headers)
        second = new_trip(client, auth_headers)
        client.patch(f"/trips/{first['id']}", json={"title": "Goa", "isPublic": False}, headers=auth_headers)

        ids = [t["id"] for t in client.get("/trips", headers=auth_headers).json()]
        assert ids == [second["id"], first["id"]]
        public = client.get("/trips", params={"public_only": True}, headers=auth_headers).json()
        assert [t["id"] for t in public] == [second["id"]]
        found = client.get("/trips", params={"q": "goa"}, headers=auth_headers).json()
        assert [t["id"] for t in found] == [first["id"]]

    def test_trips_are_private_to_owner(self, client, auth_headers):
        trip = new_trip(client, auth_headers)
        r = client.post("/auth/signup", json={"email": "other@gmail.com", "password": "abcdef"})
        other = {"Authorization": f"Bearer {r.json()['access_token']}"}
        assert client.get(f"/trips/{trip['id']}", headers=other).status_code == 404
        assert client.get("/trips", headers=other).json() == []

    def test_days_costs_and_totals(self, client, auth_headers):
        trip = new_trip(client, auth_headers)
        base = f"/trips/{trip['id']}/days"
        r = client.post(base, headers=auth_headers)
        assert [d["dayNumber"] for d in r.json()["days"]] == [1, 2]

        client.patch(f"{base}/1/logistics", json={"hotelName": "Taj", "hotelCost": 1000}, headers=auth_headers)
        client.patch(f"{base}/1/meals/lunch", json={"cost": 250}, headers=auth_headers)
        totals = client.get(f"{base}/1/totals", headers=auth_headers).json()
        assert totals == {"dayNumber": 1, "dayTotal": 1250, "tripTotal": 1250}

        r = client.patch(f"{base}/1/logistics", json={"hotelCost": -5}, headers=auth_headers)
        assert r.status_code == 422
        assert client.patch(f"{base}/1/meals/brunch", json={"cost": 5}, headers=auth_headers).status_code == 422
        assert client.get(f"{base}/9/totals", headers=auth_headers).status_code == 404

        r = client.post(f"{base}/2/complete", headers=auth_headers)
        assert r.json()["days"][1]["isCompleted"] is True

    def test_cover_image(self, client, auth_headers):
        trip = new_trip(client, auth_headers)
        r = client.put(f"/trips/{trip['id']}/cover", json={"image": "data:image/png;base64,abc"}, headers=auth_headers)
        assert r.json()["coverImage"] == "data:image/png;base64,abc"


class TestDictationEndpoints:
    def test_audio_upload_merges(self, client, auth_headers, narrator):
        narrator.results.append(make_result("arrival", "fort", suggested_location="Jaipur",
                                            logistics={"transport_cost": 500}))
        trip = new_trip(client, auth_headers)
        r = client.post(
            f"/trips/{trip['id']}/days/1/dictation",
            files={"file": ("note.webm", b"fake-audio", "audio/webm")},
            headers=auth_headers,
        )
        assert r.status_code == 200
        body = r.json()
        assert body["skipped"] is False
        day = body["trip"]["days"][0]
        assert [s["topic"] for s in day["sections"]] == ["arrival", "fort"]
        assert day["logistics"]["transportCost"] == 500
        assert body["trip"]["location"] == "Jaipur"

        stored = client.get(f"/trips/{trip['id']}", headers=auth_headers).json()
        assert stored == body["trip"]

    def test_section_image_after_narration(self, client, auth_headers, narrator):
        narrator.results.append(make_result("arrival"))
        trip = new_trip(client, auth_headers)
        r = client.post(f"/trips/{trip['id']}/days/1/narration", json={"transcript": "hello"}, headers=auth_headers)
        section_id = r.json()["trip"]["days"][0]["sections"][0]["id"]
        r = client.put(
            f"/trips/{trip['id']}/days/1/sections/{section_id}/image",
            json={"image": "https://img.test/a.jpg"},
            headers=auth_headers,
        )
        assert r.json()["days"][0]["sections"][0]["image"] == "https://img.test/a.jpg"

    def test_empty_narration_is_skipped(self, client, auth_headers, narrator):
        trip = new_trip(client, auth_headers)
        r = client.post(f"/trips/{trip['id']}/days/1/narration", json={"transcript": "  "}, headers=auth_headers)
        assert r.status_code == 200
        assert r.json()["skipped"] is True
        assert narrator.calls == []

    def test_service_error_keeps_trip(self, client, auth_headers, narrator):
        narrator.results.append(ServiceError("Editorial processor returned invalid data structure."))
        trip = new_trip(client, auth_headers)
        r = client.post(f"/trips/{trip['id']}/days/1/narration", json={"transcript": "hello"}, headers=auth_headers)
        assert r.status_code == 502
        assert r.json()["error"] == "ServiceError"
        assert client.get(f"/trips/{trip['id']}", headers=auth_headers).json() == trip

    def test_empty_upload(self, client, auth_headers):
        trip = new_trip(client, auth_headers)
        r = client.post(
            f"/trips/{trip['id']}/days/1/dictation",
            files={"file": ("note.webm", b"", "audio/webm")},
            headers=auth_headers,
        )
        assert (r.status_code, r.json()["error"]) == (400, "DeviceError")


class TestLocalizedErrors:
    def test_login_error_in_requested_language(self, client):
        r = client.post("/auth/login", json={"email": "nobody@gmail.com", "password": "abcdef", "lang": "hi"})
        assert r.status_code == 404
        assert r.json()["detail"] == "खाता नहीं मिला। कृपया पहले साइन अप करें।"

        r = client.post("/auth/signup", json={"email": "x@yahoo.com", "password": "abcdef"},
                        headers={"Accept-Language": "hi-IN,hi;q=0.9"})
        assert r.json()["detail"] == "कृपया एक मान्य @gmail.com पते का उपयोग करें।"

    def test_english_by_default(self, client):
        r = client.post("/auth/login", json={"email": "a@gmail.com", "password": "abc"})
        assert r.json()["detail"] == "Password must be at least 6 characters."

    def test_saved_preference_localizes_errors(self, client, auth_headers, narrator):
        client.put("/preferences/language", json={"lang": "hi"}, headers=auth_headers)
        r = client.get("/trips/missing", headers=auth_headers)
        assert (r.status_code, r.json()["detail"]) == (404, "यह यात्रा नहीं मिली।")

        narrator.results.append(ServiceError("Narrative service error"))
        trip = new_trip(client, auth_headers)
        r = client.post(f"/trips/{trip['id']}/days/1/narration", json={"transcript": "hello"}, headers=auth_headers)
        assert r.status_code == 502
        assert r.json()["detail"] == "यात्रा को प्रोसेस करने में विफल। कृपया पुन: प्रयास करें।"


def test_responses_and_storage_use_camel_case(client, auth_headers, store):
    trip = new_trip(client, auth_headers)
    day = trip["days"][0]
    assert {"rawTranscript", "foodLogistics", "isCompleted"} <= set(day)
    assert "raw_transcript" not in day
    assert {"ownerId", "coverImage", "isPublic"} <= set(trip)
    assert '"rawTranscript"' in store.get(f"travellog_trips:{trip['ownerId']}")
