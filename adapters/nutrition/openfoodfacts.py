"""
Nutrient lookup against the Open Food Facts product search.

Open Food Facts needs no API key; it asks clients to identify themselves with a
User-Agent. Nutriments are reported per 100 g and scaled to the requested
quantity.
"""

import httpx
import structlog

from telemetry.config import NutritionConfig
from telemetry.domain.models import NutrientTotals
from telemetry.errors import ExternalDependencyError
from telemetry.services.result import Result

logger = structlog.get_logger(__name__)

# Our field -> Open Food Facts nutriment keys, per-100g key first.
NUTRIMENT_KEYS: dict[str, tuple[str, ...]] = {
    "calories": ("energy-kcal_100g", "energy-kcal"),
    "protein": ("proteins_100g", "proteins"),
    "carbohydrates": ("carbohydrates_100g", "carbohydrates"),
    "fat": ("fat_100g", "fat"),
    "fiber": ("fiber_100g", "fiber"),
}


def _first_number(nutriments: dict, keys: tuple[str, ...]) -> float:
    for key in keys:
        try:
            return float(nutriments[key])
        except (KeyError, TypeError, ValueError):
            continue
    return 0.0


def pick_product(products: list[dict]) -> dict:
    """Prefer the first product that actually carries energy or protein values."""
    for product in products:
        nutriments = product.get("nutriments") or {}
        if "energy-kcal_100g" in nutriments or "proteins_100g" in nutriments:
            return product
    return products[0]


def scale_nutriments(nutriments: dict, quantity: float) -> NutrientTotals:
    multiplier = quantity / 100
    values = {
        field: _first_number(nutriments, keys) * multiplier
        for field, keys in NUTRIMENT_KEYS.items()
    }
    return NutrientTotals(
        calories=round(values["calories"]),
        protein=round(values["protein"], 1),
        carbohydrates=round(values["carbohydrates"], 1),
        fat=round(values["fat"], 1),
        fiber=round(values["fiber"], 1),
    )


class OpenFoodFactsLookup:
    """Implements ``NutrientLookup`` over the Open Food Facts search endpoint."""

    def __init__(
        self, config: NutritionConfig, http_client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            headers={"User-Agent": config.user_agent},
        )
        self.logger = logger.bind(component="open_food_facts_lookup")

    async def lookup(
        self, name: str, quantity: float, unit: str = "g"
    ) -> Result[NutrientTotals, ExternalDependencyError]:
        try:
            response = await self._client.get(
                self.config.lookup_url,
                params={"search_terms": name, "json": 1, "page_size": 3},
                headers={"User-Agent": self.config.user_agent},
            )
            response.raise_for_status()
            products = response.json().get("products") or []
        except httpx.HTTPStatusError as e:
            return Result.err(
                ExternalDependencyError("open_food_facts", f"HTTP {e.response.status_code}")
            )
        except (httpx.HTTPError, ValueError) as e:
            return Result.err(ExternalDependencyError("open_food_facts", str(e)))

        if not products:
            return Result.err(
                ExternalDependencyError("open_food_facts", f"No food found for {name!r}")
            )

        product = pick_product(products)
        totals = scale_nutriments(product.get("nutriments") or {}, quantity)
        self.logger.debug(
            "nutrients_found", food=name, quantity=quantity, calories=totals.calories
        )
        return Result.ok(totals)

    async def aclose(self) -> None:
        await self._client.aclose()
