"""
Demo Signal Source - Randomized upstream payloads for offline demos.

DEMO ONLY: every number this source returns is invented. It exists
so the dashboard and CLI can run without credentials, and so the
pipeline can be exercised end to end. Payload shapes mirror the
real hosted functions so the normalizer and aggregator take the
same code paths they take in production.

Pass a seed for reproducible output.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Optional

from core.clock import ClockProtocol
from core.config import CircuitBreakerConfig, RetryConfig

from ..base import BaseSignalSource
from ..exceptions import FetchError
from ..models import SourceMetadata


logger = logging.getLogger(__name__)


THEMES = [
    "ease of use", "pricing", "integrations", "customer support",
    "automation", "time savings", "mobile app", "onboarding",
]

PAIN_POINTS = [
    "too expensive", "steep learning curve", "missing features",
    "privacy concerns", "unreliable sync", "poor support",
]

HASHTAGS = [
    "#startup", "#saas", "#productivity", "#ai", "#buildinpublic",
    "#smallbusiness", "#nocode", "#founders",
]

SUBREDDITS = ["startups", "Entrepreneur", "SaaS", "smallbusiness", "sideproject"]

NEWS_OUTLETS = ["TechCrunch", "The Verge", "Forbes", "Reuters", "Business Insider"]

COMPETITORS = ["Acme Labs", "Globex", "Initech", "Umbrella Soft", "Hooli", "Vandelay"]


class DemoSignalSource(BaseSignalSource):
    """
    Randomized stand-in for the hosted function gateway.

    Usage:
        source = DemoSignalSource(seed=42)
        raw = await source.invoke("reddit-sentiment", {"idea": "..."})
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        failure_rate: float = 0.0,
        simulate_latency: bool = False,
        retry: Optional[RetryConfig] = None,
        circuit: Optional[CircuitBreakerConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        super().__init__(retry=retry, circuit=circuit, clock=clock)
        self._rng = random.Random(seed)
        self.failure_rate = failure_rate
        self.simulate_latency = simulate_latency
        self._generators: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            "reddit-sentiment": self._reddit,
            "reddit-search": self._reddit,
            "twitter-search": self._twitter,
            "youtube-search": self._youtube,
            "gdelt-news": self._news,
            "news-analysis": self._news,
            "smoothbrains-score": self._pmf_score,
            "market-size": self._market_size,
            "competition": self._competition,
            "competitor-analysis": self._competition,
            "sentiment": self._sentiment,
            "market-trends": self._market_trends,
            "google-trends": self._google_trends,
            "amazon-public": self._amazon,
            "web-search": self._web_search,
        }

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name="demo",
            display_name="Demo Data (randomized)",
            is_demo=True,
            tags=["demo", "offline"],
        )

    async def _invoke_raw(self, function_name: str, body: dict[str, Any]) -> Any:
        if self.simulate_latency:
            await asyncio.sleep(self._rng.uniform(0.05, 0.3))

        if self.failure_rate and self._rng.random() < self.failure_rate:
            raise FetchError(
                f"Simulated failure for {function_name}",
                source_name=function_name,
                status_code=503,
            )

        generator = self._generators.get(function_name, self._insights)
        return generator(body)

    # ─────────────────────────────────────────────────────────────
    # Generators
    # ─────────────────────────────────────────────────────────────

    def _split(self) -> dict[str, int]:
        positive = self._rng.randint(25, 75)
        neutral = self._rng.randint(0, 100 - positive)
        return {
            "positive": positive,
            "neutral": neutral,
            "negative": 100 - positive - neutral,
        }

    @staticmethod
    def _idea(body: dict[str, Any]) -> str:
        return str(body.get("idea") or body.get("idea_text") or body.get("query") or "this idea")

    def _reddit(self, body: dict[str, Any]) -> dict[str, Any]:
        idea = self._idea(body)
        split = self._split()
        posts = []
        for i in range(self._rng.randint(3, 6)):
            subreddit = self._rng.choice(SUBREDDITS)
            posts.append({
                "title": f"Would you pay for {idea}? ({i + 1})",
                "excerpt": f"Thread discussing {self._rng.choice(THEMES)} for {idea}",
                "subreddit": subreddit,
                "permalink": f"https://reddit.com/r/{subreddit}/comments/demo{i}",
                "sentiment": self._rng.choice(["positive", "neutral", "negative"]),
            })
        total = self._rng.randint(20, 400)
        return {
            "data": {
                "totalPosts": total,
                "mentions": total,
                **split,
                "sentiment": dict(split),
                "themes": self._rng.sample(THEMES, 3),
                "painPoints": self._rng.sample(PAIN_POINTS, 2),
                "samplePosts": posts,
                "topSubreddits": self._rng.sample(SUBREDDITS, 3),
            }
        }

    def _twitter(self, body: dict[str, Any]) -> dict[str, Any]:
        idea = self._idea(body)
        hashtags = self._rng.sample(HASHTAGS, 4)
        tweets = [
            {
                "id": str(self._rng.randint(10**17, 10**18)),
                "text": f"Just tried something like {idea}. {self._rng.choice(hashtags)}",
            }
            for _ in range(self._rng.randint(3, 6))
        ]
        total = self._rng.randint(50, 2000)
        return {
            "twitter_buzz": {
                "metrics": {
                    "total_tweets": total,
                    "overall_sentiment": self._split(),
                    "top_hashtags": hashtags,
                },
                "raw_tweets": tweets,
            },
            "data": {
                "mentions": total,
                "reach": total * self._rng.randint(50, 400),
                "trendingHashtags": hashtags,
            },
        }

    def _youtube(self, body: dict[str, Any]) -> dict[str, Any]:
        idea = self._idea(body)
        videos = []
        for i in range(self._rng.randint(3, 8)):
            video_id = f"demo{self._rng.randint(1000, 9999)}"
            videos.append({
                "title": f"{idea}: review #{i + 1}",
                "videoId": video_id,
                "channel": f"Channel {i + 1}",
                "relevance": round(self._rng.uniform(0.2, 1.0), 2),
                "views": self._rng.randint(500, 500_000),
            })
        relevance = sum(v["relevance"] for v in videos) / len(videos)
        return {
            "data": {
                "youtube_insights": videos,
                "summary": {
                    "avg_relevance": round(relevance, 2),
                    "total_videos": len(videos),
                    "avg_views": sum(v["views"] for v in videos) // len(videos),
                },
            }
        }

    def _news(self, body: dict[str, Any]) -> dict[str, Any]:
        idea = self._idea(body)
        articles = [
            {
                "title": f"Market watch: {idea} ({i + 1})",
                "url": f"https://news.example.com/demo/{i}",
                "source": {"name": self._rng.choice(NEWS_OUTLETS)},
                "sentiment_score": round(self._rng.uniform(-1, 1), 2),
                "publishedDate": f"2025-01-{i + 1:02d}",
            }
            for i in range(self._rng.randint(2, 8))
        ]
        average = sum(a["sentiment_score"] for a in articles) / len(articles)
        return {
            "articles": articles,
            "totalArticles": len(articles),
            "sentiment": {"average": round(average, 3)},
        }

    def _pmf_score(self, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "score": self._rng.randint(20, 95),
            "factors": {
                "demand": self._rng.randint(1, 10),
                "competition": self._rng.randint(1, 10),
                "timing": self._rng.randint(1, 10),
            },
        }

    def _market_size(self, body: dict[str, Any]) -> dict[str, Any]:
        tam = self._rng.randint(1, 90) * 10**9
        sam = tam // self._rng.randint(5, 20)
        som = sam // self._rng.randint(10, 50)
        return {
            "tam": tam,
            "sam": sam,
            "som": som,
            "maturity": self._rng.choice(["Emerging", "Growing", "Mature"]),
        }

    def _competition(self, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "level": self._rng.choice(["Low", "Medium", "High"]),
            "competitors": [
                {"name": name, "description": f"{name} offers an adjacent product"}
                for name in self._rng.sample(COMPETITORS, self._rng.randint(2, 5))
            ],
            "marketShare": f"{self._rng.randint(1, 15)}%",
            "barrier": self._rng.choice(["Low", "Medium", "High"]),
        }

    def _sentiment(self, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "score": self._rng.randint(20, 90),
            "confidence": self._rng.choice(["Low", "Medium", "High"]),
        }

    def _market_trends(self, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "trends": {
                "searchVolume": {
                    "trend": self._rng.choice(["rising", "stable", "declining"]),
                    "monthlyVolume": self._rng.randint(1_000, 200_000),
                    "growthRate": self._rng.randint(-20, 80),
                },
                "marketSentiment": self._rng.choice(["positive", "neutral", "negative"]),
                "insights": [f"Interest in {self._rng.choice(THEMES)} is growing"],
            }
        }

    def _google_trends(self, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "trends": {
                "trendScore": self._rng.randint(0, 100),
                "trending": self._rng.choice(["up", "stable", "down"]),
                "growthRate": self._rng.randint(-30, 120),
                "insights": ["Search interest peaks on weekdays"],
            }
        }

    def _amazon(self, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "data": {
                "averageRating": round(self._rng.uniform(2.5, 4.9), 1),
                "totalReviews": self._rng.randint(10, 50_000),
                "topProducts": [
                    {
                        "name": f"{name} Kit",
                        "rating": round(self._rng.uniform(3.0, 5.0), 1),
                        "reviews": self._rng.randint(5, 5000),
                    }
                    for name in self._rng.sample(COMPETITORS, 3)
                ],
                "commonComplaints": self._rng.sample(PAIN_POINTS, 2),
            }
        }

    def _web_search(self, body: dict[str, Any]) -> dict[str, Any]:
        idea = self._idea(body)
        return {
            "organic_results": [
                {
                    "title": f"{idea} - result {i + 1}",
                    "link": f"https://example.com/{i}",
                    "snippet": f"An article mentioning {self._rng.choice(THEMES)}",
                }
                for i in range(self._rng.randint(3, 8))
            ]
        }

    def _insights(self, body: dict[str, Any]) -> dict[str, Any]:
        """Standard tile shape, as returned by the AI search functions."""
        tile_type = str(body.get("tileType") or "insights")
        return {
            "metrics": [
                {
                    "name": "Signal Strength",
                    "value": self._rng.randint(1, 100),
                    "unit": "/100",
                    "confidence": round(self._rng.uniform(0.4, 0.9), 2),
                    "explanation": f"Synthesized {tile_type.replace('_', ' ')} signal",
                },
            ],
            "items": [
                {
                    "title": f"Finding {i + 1}",
                    "snippet": f"Evidence related to {self._rng.choice(THEMES)}",
                    "url": f"https://example.com/finding/{i}",
                    "source": "demo",
                }
                for i in range(3)
            ],
            "insights": [f"Users value {self._rng.choice(THEMES)}"],
            "citations": [],
        }
