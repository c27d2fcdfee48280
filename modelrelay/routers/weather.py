"""Weather router."""

import logging

from fastapi import APIRouter, HTTPException, Request

from modelrelay.agent.prompts import detect_language
from modelrelay.core.exceptions import LocationNotFoundError, WeatherLookupError
from modelrelay.core.security import sanitize_input
from modelrelay.models.schemas import WeatherRequest, WeatherResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=WeatherResponse, response_model_by_alias=True)
async def get_weather(request: Request, body: WeatherRequest):
    """Current conditions and a 7-day forecast for a place name."""
    client = request.app.state.weather_client
    location = sanitize_input(body.location)
    language = body.language or detect_language(location)

    try:
        info = await client.get_weather(location, language)
    except LocationNotFoundError:
        raise HTTPException(status_code=404, detail=f"Location not found: {location}")
    except WeatherLookupError as e:
        logger.error(f"Weather lookup for {location} failed: {e}")
        raise HTTPException(status_code=503, detail="Weather service unavailable")

    return WeatherResponse(weather_info=info)
