"""Current weather tool."""

from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, Field

from toolchat.tools.base import HttpTool, ToolContext, ToolError
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

WEATHER_URL = "https://wttr.in/{city}"


class WeatherInput(BaseModel):
    """Input schema for the weather tool."""

    city: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="City name, optionally with country (e.g., London, Paris France)",
    )


def _number(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class WeatherTool(HttpTool):
    name = "get_weather"
    description = "Get the current weather conditions for a city"
    input_model = WeatherInput

    async def run(self, params: WeatherInput, context: ToolContext) -> dict[str, Any]:
        city = params.city.strip()
        logger.info(f"Fetching weather for {city}")

        data = await self.fetch_json(WEATHER_URL.format(city=quote(city)), params={"format": "j1"})

        try:
            current = data["current_condition"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ToolError(f"Weather not found for {city}") from e

        descriptions = current.get("weatherDesc") or [{}]
        area = (data.get("nearest_area") or [{}])[0]
        area_name = (area.get("areaName") or [{}])[0].get("value", city)
        country = (area.get("country") or [{}])[0].get("value")

        return {
            "location": f"{area_name}, {country}" if country else area_name,
            "temperature_c": _number(current.get("temp_C")),
            "temperature_f": _number(current.get("temp_F")),
            "condition": descriptions[0].get("value"),
            "humidity": _number(current.get("humidity")),
            "wind_speed_kmph": _number(current.get("windspeedKmph")),
            "wind_direction": current.get("winddir16Point"),
            "visibility_km": _number(current.get("visibility")),
            "uv_index": _number(current.get("uvIndex")),
        }
