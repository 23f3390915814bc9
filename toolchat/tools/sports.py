"""Sports scores tool."""

from typing import Any

from pydantic import BaseModel, Field

from toolchat.tools.base import HttpTool, ToolContext, ToolError
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

SCOREBOARD_URL = "https://site.api.espn.com/apis/site/v2/sports/{sport}/{league}/scoreboard"
DEFAULT_SPORT = "basketball"
MAX_GAMES = 5

SPORT_ALIASES = {"soccer": "football"}
LEAGUES = {
    "basketball": "nba",
    "football": "nfl",
    "baseball": "mlb",
    "hockey": "nhl",
}


def normalize_sport(sport: str | None) -> str:
    """Lower-case the sport and apply upstream naming ("soccer" is "football")."""
    key = (sport or "").strip().lower() or DEFAULT_SPORT
    return SPORT_ALIASES.get(key, key)


class SportsInput(BaseModel):
    """Input schema for the sports scores tool."""

    sport: str | None = Field(
        default=None,
        max_length=50,
        description="Optional sport type (e.g., basketball, football, soccer)",
    )


def _competitor(competitors: list[dict[str, Any]], side: str) -> dict[str, Any]:
    return next((c for c in competitors if c.get("homeAway") == side), {})


class SportsScoresTool(HttpTool):
    name = "get_sports_scores"
    description = "Get recent sports scores and game information"
    input_model = SportsInput

    async def run(self, params: SportsInput, context: ToolContext) -> dict[str, Any]:
        sport = normalize_sport(params.sport)
        league = LEAGUES.get(sport)
        if league is None:
            raise ToolError(f"Unsupported sport: {params.sport}")
        logger.info(f"Fetching {sport} scores ({league})")

        data = await self.fetch_json(SCOREBOARD_URL.format(sport=sport, league=league))

        events = data.get("events") if isinstance(data, dict) else None
        if not events:
            return {"sport": sport, "games": [], "message": "No recent games found for this sport"}

        games = []
        for event in events[:MAX_GAMES]:
            competitors = ((event.get("competitions") or [{}])[0]).get("competitors") or []
            home = _competitor(competitors, "home")
            away = _competitor(competitors, "away")
            games.append(
                {
                    "name": event.get("name"),
                    "status": ((event.get("status") or {}).get("type") or {}).get("description"),
                    "home_team": (home.get("team") or {}).get("displayName"),
                    "away_team": (away.get("team") or {}).get("displayName"),
                    "home_score": home.get("score"),
                    "away_score": away.get("score"),
                }
            )

        return {"sport": sport, "games": games}
