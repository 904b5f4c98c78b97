"""Tests for the Open Food Facts nutrient lookup, served by an httpx mock transport."""

from collections.abc import Callable

import httpx
import pytest

from adapters.nutrition.openfoodfacts import OpenFoodFactsLookup, pick_product, scale_nutriments
from telemetry.config import NutritionConfig

RICE = {
    "product_name": "White rice, cooked",
    "nutriments": {
        "energy-kcal_100g": 130,
        "proteins_100g": 2.0,
        "carbohydrates_100g": 28.0,
        "fat_100g": 0.2,
        "fiber_100g": 0.4,
    },
}


@pytest.fixture
def config() -> NutritionConfig:
    return NutritionConfig(lookup_enabled=True, user_agent="health-telemetry-tests/1.0")


def _lookup(
    config: NutritionConfig, handler: Callable[[httpx.Request], httpx.Response]
) -> OpenFoodFactsLookup:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenFoodFactsLookup(config, http_client=client)


class TestParsing:
    def test_values_are_scaled_from_per_100g(self) -> None:
        totals = scale_nutriments(RICE["nutriments"], 150)

        assert totals.calories == 195
        assert totals.protein == pytest.approx(3.0)
        assert totals.carbohydrates == pytest.approx(42.0)
        assert totals.fat == pytest.approx(0.3)
        assert totals.fiber == pytest.approx(0.6)

    def test_fallback_keys_and_non_numeric_values(self) -> None:
        totals = scale_nutriments({"energy-kcal": "80", "proteins_100g": "n/a"}, 100)

        assert totals.calories == 80
        assert totals.protein == 0

    def test_product_with_nutriments_is_preferred(self) -> None:
        bare = {"product_name": "Rice (no data)"}

        assert pick_product([bare, RICE]) is RICE
        assert pick_product([bare]) is bare


class TestLookup:
    async def test_successful_lookup(self, config: NutritionConfig) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"products": [{"product_name": "x"}, RICE]})

        result = await _lookup(config, handler).lookup("rice", 150)

        assert result.unwrap().calories == 195
        assert requests[0].url.params["search_terms"] == "rice"
        assert requests[0].headers["user-agent"] == "health-telemetry-tests/1.0"

    async def test_no_products_is_an_error(self, config: NutritionConfig) -> None:
        lookup = _lookup(config, lambda request: httpx.Response(200, json={"products": []}))

        result = await lookup.lookup("moon cheese", 100)

        assert result.is_err()
        assert "No food found" in str(result.unwrap_err())

    async def test_http_status_error(self, config: NutritionConfig) -> None:
        lookup = _lookup(config, lambda request: httpx.Response(503))

        result = await lookup.lookup("rice", 100)

        assert result.unwrap_err().dependency == "open_food_facts"
        assert "HTTP 503" in str(result.unwrap_err())

    async def test_transport_error(self, config: NutritionConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await _lookup(config, handler).lookup("rice", 100)

        assert result.is_err()
        assert "connection refused" in str(result.unwrap_err())
