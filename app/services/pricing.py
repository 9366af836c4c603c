# app/services/pricing.py
# Consultation pricing policies. A policy receives the doctor's profile and
# returns the cost charged for one appointment.
import random
from typing import Any, Callable, Dict, Optional, Union

Cost = Union[int, float]
PricingPolicy = Callable[[Dict[str, Any]], Cost]


def random_consultation_cost(minimum: int = 5, maximum: int = 10, rng: Optional[random.Random] = None) -> PricingPolicy:
    """Flat placeholder pricing: a uniform whole amount in [minimum, maximum]."""
    if minimum > maximum:
        raise ValueError("minimum must not exceed maximum")
    rng = rng or random.Random()

    def policy(doctor_profile: Dict[str, Any]) -> Cost:
        return rng.randint(minimum, maximum)

    return policy


def fixed_consultation_cost(amount: Cost) -> PricingPolicy:
    def policy(doctor_profile: Dict[str, Any]) -> Cost:
        return amount

    return policy
