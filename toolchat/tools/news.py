"""News headlines tool."""

from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import BaseModel, Field

from toolchat.tools.base import HttpTool, ToolContext, ToolError
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

HEADLINES_URL = "https://newsapi.org/v2/top-headlines"
DEFAULT_TOPIC = "technology"
MAX_HEADLINES = 5


class NewsInput(BaseModel):
    """Input schema for the news tool."""

    topic: str | None = Field(
        default=None,
        max_length=100,
        description="Optional topic to filter news (e.g., technology, business, sports)",
    )


def unavailable_headlines() -> dict[str, Any]:
    """Synthetic result used whenever live headlines cannot be fetched."""
    return {
        "headlines": [
            {
                "title": "Unable to fetch live news. Please try again later.",
                "source": "System",
                "url": "",
                "published_at": datetime.now(UTC).isoformat(),
            }
        ]
    }


class NewsHeadlinesTool(HttpTool):
    name = "get_news_headlines"
    description = "Get the latest news headlines, optionally filtered by topic"
    input_model = NewsInput

    def __init__(self, client: httpx.AsyncClient, api_key: str = "demo"):
        super().__init__(client)
        self.api_key = api_key

    async def run(self, params: NewsInput, context: ToolContext) -> dict[str, Any]:
        topic = (params.topic or "").strip() or DEFAULT_TOPIC
        logger.info(f"Fetching news for topic: {topic}")

        try:
            data = await self.fetch_json(
                HEADLINES_URL,
                params={"q": topic, "pageSize": MAX_HEADLINES, "apiKey": self.api_key},
            )
        except ToolError as e:
            logger.warning(f"News fetch failed for {topic}: {e}")
            return unavailable_headlines()

        articles = data.get("articles") if isinstance(data, dict) else None
        if not articles:
            return unavailable_headlines()

        return {
            "topic": topic,
            "headlines": [
                {
                    "title": article.get("title"),
                    "source": (article.get("source") or {}).get("name"),
                    "url": article.get("url"),
                    "published_at": article.get("publishedAt"),
                }
                for article in articles[:MAX_HEADLINES]
            ],
        }
