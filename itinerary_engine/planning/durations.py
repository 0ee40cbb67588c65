"""Visit duration defaults for place activities."""

from itinerary_engine.models.itinerary import PlaceActivity

# Typical visit length (minutes) by location category
CATEGORY_DEFAULT_DURATIONS: dict[str, int] = {
    "shrine": 60,
    "temple": 90,
    "landmark": 120,
    "museum": 120,
    "historic": 90,
    "park": 90,
    "garden": 60,
    "viewpoint": 30,
    "market": 90,
    "restaurant": 60,
    "bar": 90,
    "entertainment": 120,
    "onsen": 90,
    # Legacy generic categories
    "culture": 90,
    "nature": 120,
    "shopping": 90,
    "view": 30,
    # Infrastructure, not a visit
    "accommodation": 0,
    "transportation": 0,
}

PACE_TAG_DURATIONS: dict[str, int] = {
    "quick-stop": 40,
    "half-day": 120,
    "full-day": 240,
}


def visit_minutes(activity: PlaceActivity, default: int = 90) -> int:
    """Expected visit duration.

    Explicit duration wins, then a pace tag, then the category default,
    then ``default``.
    """
    if activity.duration_minutes is not None:
        return activity.duration_minutes

    for tag, minutes in PACE_TAG_DURATIONS.items():
        if tag in activity.tags:
            return minutes

    if activity.category:
        category = activity.category.lower()
        if category in CATEGORY_DEFAULT_DURATIONS:
            return CATEGORY_DEFAULT_DURATIONS[category]

    return default
