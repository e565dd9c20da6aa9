"""
🐾 Pet Store User Journey
=========================
One virtual user's fixed walk through the pet store services:

    search pets → filtered searches → adopt → verify adoption →
    pet food catalog → cart → checkout → cleanup

Every step is recorded in order whether it succeeds or not. Data from
earlier responses (pet ids, food ids) feeds later requests, with fallback
ids when a response is missing or unusable.
"""

import random
import time
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from load_types import Endpoints, RequestOutcome, ScenarioResult, ProgressState
from request_executor import RequestExecutor


PET_COLORS = ["black", "brown", "white", "red", "blue"]  # red/blue match nothing
PET_TYPES = ["puppy", "kitten", "bunny"]
FOOD_MAX_PRICES = ["10", "25", "50", "100"]
FOOD_SEARCH_TERMS = ["royal", "premium", "organic", "chicken"]
KNOWN_FOOD_IDS = ["F046a4eca", "Fecd30d31", "F36a222eb", "Fc7f447a1", "F233c473c", "Ffb5ef0e2"]


def with_query(url: str, params: Dict[str, Any]) -> str:
    """Append query parameters, respecting a query the URL already has."""
    query = "&".join(f"{k}={v}" for k, v in params.items())
    if url.endswith("?") or url.endswith("&"):
        return f"{url}{query}"
    if "?" in url:
        return f"{url}&{query}"
    return f"{url}?{query}"


def _pet_items(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get("pets")
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def pick_pet(data: Any, rng: random.Random) -> Optional[Tuple[str, Optional[str]]]:
    """Choose (pet id, pet type) from a pet listing body, or None."""
    pets = [p for p in _pet_items(data) if p.get("petid") or p.get("petId")]
    if not pets:
        return None
    pet = rng.choice(pets)
    return str(pet.get("petid") or pet.get("petId")), pet.get("pettype") or pet.get("petType")


def pick_food(data: Any, rng: random.Random) -> Optional[str]:
    """Choose a food id from a food listing body, or None."""
    if isinstance(data, dict):
        data = data.get("foods")
    if not isinstance(data, list):
        return None
    ids = [
        str(item.get("id") or item.get("food_id"))
        for item in data
        if isinstance(item, dict) and (item.get("id") or item.get("food_id"))
    ]
    return rng.choice(ids) if ids else None


def fallback_pet_id(rng: random.Random) -> str:
    return f"pet{rng.randint(1, 999):03d}"


class PetStoreScenario:
    """
    Runs the pet store journey for one user at a time.

    Instances are shared by all concurrent scenarios; nothing per-user is
    kept on self. The random source is injected so tests can pin choices.
    """

    def __init__(
        self,
        endpoints: Endpoints,
        executor: RequestExecutor,
        progress: Optional[ProgressState] = None,
        rng: Optional[random.Random] = None,
    ):
        self.endpoints = endpoints
        self.executor = executor
        self.progress = progress
        self.rng = rng or random.Random()

    @property
    def cart_base(self) -> str:
        return self.endpoints.petfoodcart.rstrip("/")

    def adoption_cleanup_url(self, pet_id: str) -> str:
        return self.endpoints.payforadoption.replace(
            "/api/completeadoption", f"/api/adoption/{pet_id}"
        )

    def _checkout_payload(self, user_id: str) -> Dict[str, Any]:
        address = {
            "name": f"User {user_id}",
            "street": "123 Main St",
            "city": "Seattle",
            "state": "WA",
            "zip_code": "98101",
            "country": "USA",
        }
        return {
            "payment_method": {
                "CreditCard": {
                    "card_number": "4111111111111111",  # Test card
                    "expiry_month": 12,
                    "expiry_year": datetime.now().year + 1,
                    "cvv": "123",
                    "cardholder_name": f"User {user_id}",
                }
            },
            "shipping_address": dict(address),
            "billing_address": dict(address),
        }

    async def run(self, user_id: str, rng: Optional[random.Random] = None) -> ScenarioResult:
        """
        Run the full journey for user_id and record it in the shared progress.
        rng overrides the scenario's random source for this journey only.
        """
        start = time.perf_counter()
        rng = rng or self.rng
        ep = self.endpoints
        execute = self.executor.execute
        requests: List[RequestOutcome] = []

        # Step 1: list all pets
        pet_list = await execute("GET", ep.petsearch, user_id, capture_body=True)
        requests.append(pet_list)

        # Step 2: exploratory filtered searches
        color = rng.choice(PET_COLORS)
        requests.append(await execute("GET", with_query(ep.petsearch, {"petcolor": color}), user_id))

        pet_type = rng.choice(PET_TYPES)
        requests.append(await execute("GET", with_query(ep.petsearch, {"pettype": pet_type}), user_id))

        # Step 3: choose a pet from the listing, or fall back
        picked = pick_pet(pet_list.response_data, rng) if pet_list.success else None
        if picked:
            pet_id, picked_type = picked
            pet_type = picked_type or pet_type
        else:
            pet_id = fallback_pet_id(rng)

        # Step 4: adopt
        adoption_url = with_query(ep.payforadoption, {
            "petId": pet_id,
            "petType": pet_type,
            "userId": user_id,
        })
        requests.append(await execute("POST", adoption_url, user_id))

        # Step 5: verify the adoption was recorded
        requests.append(await execute("GET", ep.petlistadoptions, user_id))

        # Step 6: pet food catalog, cart and checkout
        food_list = await execute("GET", ep.petfood, user_id, capture_body=True)
        requests.append(food_list)

        food_filter = with_query(ep.petfood, {
            "pettype": rng.choice(PET_TYPES),
            "max_price": rng.choice(FOOD_MAX_PRICES),
        })
        requests.append(await execute("GET", food_filter, user_id))

        food_search = with_query(ep.petfood, {"search": rng.choice(FOOD_SEARCH_TERMS)})
        requests.append(await execute("GET", food_search, user_id))

        food_id = None
        if food_list.success:
            food_id = pick_food(food_list.response_data, rng)
        if food_id is None:
            food_id = rng.choice(KNOWN_FOOD_IDS)
        requests.append(await execute("GET", f"{ep.petfood.rstrip('/')}/{food_id}", user_id))

        cart_url = f"{self.cart_base}/api/cart/{user_id}"
        requests.append(await execute("GET", cart_url, user_id))
        requests.append(await execute(
            "POST", f"{cart_url}/items", user_id,
            payload={"food_id": food_id, "quantity": rng.randint(1, 4)},
        ))
        requests.append(await execute(
            "PUT", f"{cart_url}/items/{food_id}", user_id,
            payload={"quantity": rng.randint(1, 9)},
        ))
        requests.append(await execute(
            "POST", f"{cart_url}/checkout", user_id,
            payload=self._checkout_payload(user_id),
        ))

        # Step 7: cleanup, always attempted
        requests.append(await execute("DELETE", cart_url, user_id))
        requests.append(await execute("DELETE", self.adoption_cleanup_url(pet_id), user_id))

        failed = sum(1 for r in requests if not r.success)
        success = pet_list.success and failed == 0
        error = None
        if not success:
            error = f"{failed}/{len(requests)} requests failed"
            if not pet_list.success:
                error = f"pet listing failed, used fallback pet {pet_id}; {error}"

        result = ScenarioResult(
            user_id=user_id,
            requests=tuple(requests),
            elapsed_ms=(time.perf_counter() - start) * 1000,
            success=success,
            error=error,
        )
        if self.progress is not None:
            await self.progress.record_scenario(result)
        return result
