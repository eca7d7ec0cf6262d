import re
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from app.core.errors import ValidationError
from app.models.domain import CompanyInfo, DailyPlan, ItineraryPayload, Meals
from app.services.render import ImageSpec

MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

# Target sizes in pixels (width, height)
LOGO_SIZE = (315, 50)
COVER_SIZE = (698, 334)
ROUTE_MAP_SIZE = (307, 420)


def parse_start_date(value: Optional[str]) -> date:
    """Accepts YYYY-MM-DD (ISO, optionally with a time part) or DD-MM-YYYY."""
    if not value:
        raise ValidationError("Tour start date is required")
    text = value.strip()
    for fmt in ("%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"Invalid tour start date: {value}")


def display_date(d: date) -> str:
    """5 Jan 2025"""
    return f"{d.day} {MONTHS[d.month - 1]} {d.year}"


def numeric_date(d: date) -> str:
    return d.strftime("%d-%m-%Y")


def split_route(route: str) -> List[str]:
    """
    "Colombo Airport - Galle - Matara" -> ["ColomboAirport", "Galle", "Matara"]

    Only the first place (the arrival airport) loses its inner whitespace.
    """
    parts = route.split(" - ")
    parts[0] = re.sub(r"\s+", "", parts[0])
    cleaned = re.sub(r"\s*-\s*", "-", " - ".join(parts))
    return [p for p in cleaned.split("-") if p]


def encode_route(route: str) -> str:
    """Encode a route into the `&start;A&B&end;C` form the map frame reads."""
    if not route or not route.strip():
        raise ValidationError("Route is required")
    places = split_route(route.strip())
    if len(places) < 2:
        raise ValidationError(
            "Route must contain at least two locations separated by hyphens"
        )
    segments = [f"start;{places[0]}", *places[1:-1], f"end;{places[-1]}"]
    return "&" + "&".join(segments)


def food_supply(meals: Optional[Meals]) -> str:
    meals = meals or Meals()
    return "({}/{}/{})".format(
        "B" if meals.breakfast else "-",
        "L" if meals.lunch else "-",
        "D" if meals.dinner else "-",
    )


def overnight_text(day: DailyPlan) -> str:
    if not day.overnight_stay:
        return "No overnight stay"
    hotel = day.resolved_hotel
    return f"Overnight Stay: {hotel}" if hotel else "Overnight stay"


def day_count(payload: ItineraryPayload) -> int:
    days = payload.number_of_days
    if days is None:
        days = len(payload.daily_plans)
    if days < 1:
        raise ValidationError("Number of days must be at least 1")
    return days


def validate_payload(payload: ItineraryPayload) -> None:
    if not payload.route or not payload.route.strip():
        raise ValidationError("Invalid or missing route")
    if not payload.daily_plans:
        raise ValidationError("Invalid or missing dailyPlans")
    day_count(payload)
    parse_start_date(payload.tour_start_date)


def resolve_asset(reference: Optional[str], data_dir: Path) -> Optional[Path]:
    """Stored references look like "/img/pp/logo.png"; they live under data_dir."""
    if not reference:
        return None
    path = Path(reference)
    if path.is_absolute() and path.exists():
        return path
    return data_dir / reference.lstrip("/\\")


def format_itinerary(
    payload: ItineraryPayload,
    company: CompanyInfo,
    screenshot_path: Path,
    data_dir: Path,
    default_cover_path: Path,
) -> Tuple[Dict[str, Any], Dict[str, ImageSpec]]:
    """Build the template context and image specs for one itinerary."""
    validate_payload(payload)
    days = day_count(payload)
    start = parse_start_date(payload.tour_start_date)
    end = start + timedelta(days=days - 1)

    travellers = payload.number_of_travelers
    no_of_travellers = str(travellers) if travellers and travellers > 1 else "1"

    itb_table = [
        {
            "day_number": f"Day {index + 1}",
            "place": day.place,
            "activity": day.resolved_activity or "",
        }
        for index, day in enumerate(payload.daily_plans)
    ]

    details = []
    for index, day in enumerate(payload.daily_plans):
        current = start + timedelta(days=index)
        details.append(
            {
                "date": numeric_date(current),
                "display_date": display_date(current),
                "title": f"Day {index + 1} – {day.place} ({display_date(current)})",
                "description": day.description or "Activities for the day",
                "overnight_stay": overnight_text(day),
                "food_supply": food_supply(day.meals),
            }
        )

    accommodation = [
        {"city": day.place, "hotel": day.resolved_hotel}
        for day in payload.daily_plans
        if day.overnight_stay and day.resolved_hotel
    ]

    context = {
        "company_name": company.company_name,
        "address": company.address,
        "phone": company.phone,
        "email": company.email,
        "web": company.website,
        "total_days": str(days),
        "total_nights": str(days - 1),
        "tourist_name": payload.tourist_name,
        "no_of_travellers": no_of_travellers,
        "travel_date_period": f"{display_date(start)} – {display_date(end)}",
        "departure_date": display_date(end),
        "route": payload.route,
        "itb_table": itb_table,
        "details": details,
        "accommodation": accommodation,
    }

    if payload.cover_image == "custom" and payload.custom_image:
        cover_path = resolve_asset(payload.custom_image, data_dir)
    else:
        cover_path = default_cover_path

    images = {
        "logo": ImageSpec(resolve_asset(company.logo, data_dir), *LOGO_SIZE),
        "cover_image": ImageSpec(cover_path, *COVER_SIZE),
        "route_map": ImageSpec(Path(screenshot_path), *ROUTE_MAP_SIZE),
    }
    return context, images
