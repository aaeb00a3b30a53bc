from typing import Any, Optional

MODERATE_ACTIVITY_FACTOR = 1.55
DEFAULT_AGE_YEARS = 30
WEIGHT_LOSS_DEFICIT_KCAL = 500
MUSCLE_GAIN_SURPLUS_KCAL = 300

KCAL_PER_GRAM = {"protein": 4, "carbs": 4, "fat": 9}

# goal -> (daily calories, {macro: (grams, percentage)})
GOAL_DEFAULTS: dict[str, tuple[int, dict[str, tuple[int, int]]]] = {
    "weight_loss": (1800, {"protein": (180, 40), "carbs": (135, 30), "fat": (60, 30)}),
    "muscle_gain": (2500, {"protein": (200, 32), "carbs": (250, 40), "fat": (83, 30)}),
    "strength": (2200, {"protein": (165, 30), "carbs": (220, 40), "fat": (73, 30)}),
    "tone": (2000, {"protein": (150, 30), "carbs": (200, 40), "fat": (67, 30)}),
    "recomposition": (2100, {"protein": (175, 33), "carbs": (210, 40), "fat": (70, 30)}),
}
GENERIC_DEFAULTS: tuple[int, dict[str, tuple[int, int]]] = (
    2000,
    {"protein": (150, 30), "carbs": (200, 40), "fat": (67, 30)},
)

# Used when a user has no nutrition logs yet.
DEFAULT_INTAKE_AVERAGES = {
    "average_calories": 2000,
    "average_protein": 150,
    "average_carbs": 200,
    "average_fat": 67,
}

MEAL_TIMING = {
    "breakfast": {"calories": 500, "time": "7:00-9:00"},
    "snack_1": {"calories": 200, "time": "10:00-11:00"},
    "lunch": {"calories": 600, "time": "13:00-14:00"},
    "snack_2": {"calories": 200, "time": "16:00-17:00"},
    "dinner": {"calories": 500, "time": "19:00-20:00"},
}


def basal_metabolic_rate(weight_kg: float, height_cm: float, age_years: Optional[float]) -> float:
    # Mifflin-St Jeor, male constant.
    age = age_years if age_years is not None else DEFAULT_AGE_YEARS
    return 10 * weight_kg + 6.25 * height_cm - 5 * age + 5


def calculate_nutrition_goals(profile: Any) -> dict[str, Any]:
    goal = getattr(profile, "goal", None)
    calories, split = GOAL_DEFAULTS.get(goal, GENERIC_DEFAULTS)
    macros = {name: {"grams": grams, "percentage": pct} for name, (grams, pct) in split.items()}

    weight = getattr(profile, "weight", None)
    height = getattr(profile, "height", None)
    if weight and height:
        tdee = basal_metabolic_rate(weight, height, getattr(profile, "age", None)) * MODERATE_ACTIVITY_FACTOR
        if goal == "weight_loss":
            calories = round(tdee - WEIGHT_LOSS_DEFICIT_KCAL)
        elif goal == "muscle_gain":
            calories = round(tdee + MUSCLE_GAIN_SURPLUS_KCAL)
        else:
            calories = round(tdee)
        for name, macro in macros.items():
            macro["grams"] = round(calories * macro["percentage"] / 100 / KCAL_PER_GRAM[name])

    return {
        "daily_calories": calories,
        "macros": macros,
        "hydration": {
            "daily_water_liters": 2.5,
            "recommendation": "Drink at least 8 glasses of water a day.",
        },
        "meal_timing": {meal: dict(slot) for meal, slot in MEAL_TIMING.items()},
    }
