import unittest
from unittest.mock import patch

from tests.helpers import MockAsyncClient, MockResponse
from tools.google_places import PLACES_BASE_URL, distance_matrix, get_place, search_text


class GooglePlacesTests(unittest.IsolatedAsyncioTestCase):
    async def test_search_returns_none_without_api_key(self):
        result = await search_text("cafes in San José", None)
        self.assertIsNone(result)

    async def test_search_text_success(self):
        payload = {
            "places": [
                {
                    "id": "ChIJ123",
                    "displayName": {"text": "Café Miel"},
                    "formattedAddress": "Barrio Escalante, San José",
                    "location": {"latitude": 9.93, "longitude": -84.06},
                    "rating": 4.6,
                    "userRatingCount": 812,
                    "priceLevel": "PRICE_LEVEL_MODERATE",
                    "primaryTypeDisplayName": {"text": "Cafe"},
                    "photos": [{"name": "places/ChIJ123/photos/abc"}],
                },
                {"id": "no-name"},
            ]
        }
        client = MockAsyncClient(MockResponse(payload))
        with patch("tools.google_places.httpx.AsyncClient", return_value=client):
            result = await search_text("cafes in San José", "key", max_results=3)

        self.assertEqual(len(result), 1)
        place = result[0]
        self.assertEqual(place.id, "ChIJ123")
        self.assertEqual(place.category, "Cafe")
        self.assertEqual(place.price_level, 2)
        self.assertAlmostEqual(place.location.lat, 9.93)
        self.assertTrue(place.image_url.startswith(f"{PLACES_BASE_URL}/places/ChIJ123/photos/abc/media"))

        url, body = client.calls[0]
        self.assertEqual(url, f"{PLACES_BASE_URL}/places:searchText")
        self.assertEqual(body["maxResultCount"], 3)
        self.assertEqual(client.headers[0]["X-Goog-Api-Key"], "key")
        self.assertIn("places.displayName", client.headers[0]["X-Goog-FieldMask"])

    async def test_search_returns_none_on_error(self):
        client = MockAsyncClient(MockResponse({}, status_code=500))
        with patch("tools.google_places.httpx.AsyncClient", return_value=client):
            result = await search_text("cafes", "key")

        self.assertIsNone(result)

    async def test_get_place_details(self):
        payload = {
            "id": "ChIJ123",
            "displayName": {"text": "Café Miel"},
            "regularOpeningHours": {"weekdayDescriptions": ["Monday: 7:00 AM - 6:00 PM"]},
            "websiteUri": "https://cafemiel.example",
        }
        client = MockAsyncClient(MockResponse(payload))
        with patch("tools.google_places.httpx.AsyncClient", return_value=client):
            result = await get_place("ChIJ123", "key")

        self.assertEqual(result["place"].name, "Café Miel")
        self.assertEqual(result["opening_hours"], ["Monday: 7:00 AM - 6:00 PM"])
        self.assertEqual(result["website"], "https://cafemiel.example")

    async def test_distance_matrix_success(self):
        payload = {
            "rows": [
                {
                    "elements": [
                        {
                            "status": "OK",
                            "duration": {"value": 1500, "text": "25 mins"},
                            "distance": {"value": 9000, "text": "9 km"},
                        }
                    ]
                }
            ]
        }
        client = MockAsyncClient(MockResponse(payload))
        with patch("tools.google_places.httpx.AsyncClient", return_value=client):
            result = await distance_matrix("A", "B", "driving", "key")

        self.assertEqual(result["duration_seconds"], 1500)
        self.assertEqual(client.calls[0][1]["mode"], "driving")

    async def test_distance_matrix_no_route(self):
        payload = {"rows": [{"elements": [{"status": "ZERO_RESULTS"}]}]}
        with patch("tools.google_places.httpx.AsyncClient", return_value=MockAsyncClient(MockResponse(payload))):
            result = await distance_matrix("A", "B", "driving", "key")

        self.assertIsNone(result)


if __name__ == "__main__":
    unittest.main()
