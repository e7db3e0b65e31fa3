"""Management command to fetch weather using the same stack as the API."""
from __future__ import annotations

import json
from typing import Any

from django.core.management.base import BaseCommand, CommandError

from meteohub.services.aggregator import STRATEGIES, AggregationFailure
from meteohub_web.api import views


class Command(BaseCommand):
    help = "Fetch aggregated current weather for coordinates or a city"

    def add_arguments(self, parser) -> None:  # noqa: D401
        parser.add_argument("--lat", type=float, help="Latitude")
        parser.add_argument("--lon", type=float, help="Longitude")
        parser.add_argument("--city", type=str, help="City name")
        parser.add_argument("--strategy", choices=STRATEGIES, help="Aggregation strategy to use")
        parser.add_argument("--lang", type=str, default="en", help="Language for descriptions")

    def handle(self, *args: Any, **options: Any) -> None:  # noqa: D401
        city = options.get("city")
        latitude = options.get("lat")
        longitude = options.get("lon")
        lang = options.get("lang") or "en"

        aggregator = views.get_aggregator()
        if options.get("strategy"):
            aggregator.set_strategy(options["strategy"])

        try:
            if city:
                result = aggregator.get_weather_by_name(city, lang=lang)
            else:
                if latitude is None or longitude is None:
                    raise CommandError("--lat and --lon are required unless --city is given")
                result = aggregator.get_weather_by_coordinates(latitude, longitude, lang=lang)
        except AggregationFailure as exc:
            raise CommandError(f"All weather providers failed: {exc}") from exc

        self.stdout.write(json.dumps(views.serialize_result(result)))
