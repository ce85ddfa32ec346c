"""Food order simulator: fabricates food-history rows for the demo kitchen."""

import random
import time

from simulator.schemas import FoodOrder

# dish -> (price, popularity weight)
MENU = {
    "Margherita Pizza": (12.5, 0.22),
    "Pepperoni Pizza": (14.0, 0.18),
    "Veggie Burger": (11.0, 0.14),
    "Caesar Salad": (9.5, 0.12),
    "Pasta Alfredo": (13.0, 0.12),
    "Chicken Wrap": (10.0, 0.10),
    "Tomato Soup": (7.0, 0.07),
    "Chocolate Brownie": (6.0, 0.05),
}

WATER_PER_PORTION = 0.8  # litres
GAS_PER_PORTION = 0.15  # m³


class OrderGenerator:
    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def _pick_dish(self) -> str:
        r = self._rng.random()
        cumulative = 0.0
        for dish, (_, weight) in MENU.items():
            cumulative += weight
            if r <= cumulative:
                return dish
        return next(iter(MENU))

    def next_order(self, now: float | None = None) -> FoodOrder:
        dish = self._pick_dish()
        price, _ = MENU[dish]
        prepared = self._rng.randint(1, 20)
        consumed = self._rng.randint(0, prepared)
        return FoodOrder(
            dish_name=dish,
            timestamp=now if now is not None else time.time() * 1000,
            quantity_prepared=prepared,
            quantity_consumed=consumed,
            water_consumption=round(prepared * WATER_PER_PORTION * self._rng.uniform(0.8, 1.2), 2),
            gas_consumption=round(prepared * GAS_PER_PORTION * self._rng.uniform(0.8, 1.2), 2),
            order_price=round(price * consumed, 2),
            food_rating=round(self._rng.uniform(1.0, 5.0), 1),
        )
