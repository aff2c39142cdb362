"""
Source Signal Parsers - One tagged variant per sentiment source.

Each variant reads a raw source response through an explicit
fallback chain of key names and exposes the same surface:

    volume      how many mentions the source contributed
    breakdown   positive/neutral/negative percentages
    cluster()   the source's slice of the unified view, or None

A variant never raises: a missing or malformed response parses to
a zero-volume signal, which contributes no cluster.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

from .fields import (
    as_dict,
    as_dicts,
    as_number,
    as_strings,
    count_where,
    first_present,
    first_truthy,
    format_number,
    percent_of,
    round_half_up,
    truncate,
)
from .models import Citation, Cluster, Quote, SentimentBreakdown


QUOTES_PER_CLUSTER = 3
CITATIONS_PER_CLUSTER = 2
QUOTE_LENGTH = 150


def _unwrap(raw: Any) -> dict[str, Any]:
    """Responses arrive either bare or wrapped in a `data` envelope."""
    payload = as_dict(raw)
    data = payload.get("data")
    return data if isinstance(data, dict) and data else payload


def _breakdown_from(data: Any) -> SentimentBreakdown:
    data = as_dict(data)
    return SentimentBreakdown(
        positive=as_number(data.get("positive")),
        neutral=as_number(data.get("neutral")),
        negative=as_number(data.get("negative")),
    )


# ─────────────────────────────────────────────────────────────
# Reddit
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RedditSignal:
    source: ClassVar[str] = "reddit"
    theme: ClassVar[str] = "Community Discussion & Feedback"

    total_posts: int = 0
    breakdown: SentimentBreakdown = field(default_factory=SentimentBreakdown)
    themes: list[str] = field(default_factory=list)
    pain_points: list[str] = field(default_factory=list)
    sample_posts: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def parse(cls, raw: Any) -> "RedditSignal":
        data = _unwrap(raw)
        return cls(
            total_posts=int(as_number(first_present(data, "totalPosts", "metrics.totalPosts"))),
            breakdown=SentimentBreakdown(
                positive=as_number(first_present(data, "positive", "sentiment.positive")),
                neutral=as_number(first_present(data, "neutral", "sentiment.neutral")),
                negative=as_number(first_present(data, "negative", "sentiment.negative")),
            ),
            themes=as_strings(data.get("themes")),
            pain_points=as_strings(data.get("painPoints")),
            sample_posts=as_dicts(first_truthy(data, "samplePosts", "posts")),
        )

    @property
    def volume(self) -> int:
        return self.total_posts

    def cluster(self) -> Optional[Cluster]:
        if self.total_posts <= 0:
            return None

        quotes = [
            Quote(
                text=str(
                    post.get("excerpt")
                    or truncate(post.get("body"), QUOTE_LENGTH)
                    or post.get("title")
                    or ""
                ),
                sentiment=str(post.get("sentiment") or "neutral"),
                source=self.source,
            )
            for post in self.sample_posts[:QUOTES_PER_CLUSTER]
        ]
        citations = [
            Citation(
                source=f"r/{post['subreddit']}" if post.get("subreddit") else "Reddit",
                url=str(post.get("permalink") or "#"),
                title=str(post.get("title") or ""),
            )
            for post in self.sample_posts[:CITATIONS_PER_CLUSTER]
        ]
        return Cluster(
            theme=self.theme,
            sentiment=self.breakdown,
            insight=(
                f"{self.total_posts} Reddit discussions analyzed with "
                f"{format_number(self.breakdown.positive)}% positive sentiment"
            ),
            quotes=quotes,
            citations=citations,
            source=self.source,
            volume=self.volume,
        )


# ─────────────────────────────────────────────────────────────
# Twitter / X
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TwitterSignal:
    source: ClassVar[str] = "twitter"
    theme: ClassVar[str] = "Social Media Buzz & Trends"

    total_tweets: int = 0
    breakdown: SentimentBreakdown = field(default_factory=SentimentBreakdown)
    top_hashtags: list[str] = field(default_factory=list)
    sample_tweets: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def parse(cls, raw: Any) -> "TwitterSignal":
        buzz = as_dict(first_present(raw, "twitter_buzz", "data.twitter_buzz"))
        return cls(
            total_tweets=int(as_number(first_present(buzz, "metrics.total_tweets"))),
            breakdown=_breakdown_from(first_present(buzz, "metrics.overall_sentiment")),
            top_hashtags=as_strings(first_present(buzz, "metrics.top_hashtags")),
            sample_tweets=as_dicts(first_present(buzz, "raw_tweets", "sample_tweets")),
        )

    @property
    def volume(self) -> int:
        return self.total_tweets

    def cluster(self) -> Optional[Cluster]:
        if self.total_tweets <= 0:
            return None

        tone = "positive" if self.breakdown.positive > self.breakdown.negative else "neutral"
        quotes = [
            Quote(
                text=truncate(tweet.get("text"), QUOTE_LENGTH),
                sentiment=tone,
                source=self.source,
            )
            for tweet in self.sample_tweets[:QUOTES_PER_CLUSTER]
        ]
        citations = [
            Citation(
                source="Twitter",
                url=f"https://twitter.com/i/web/status/{tweet.get('id')}",
                title=f"Tweet {tweet.get('id')}",
            )
            for tweet in self.sample_tweets[:CITATIONS_PER_CLUSTER]
        ]
        return Cluster(
            theme=self.theme,
            sentiment=self.breakdown,
            insight=(
                f"{self.total_tweets} tweets analyzed with "
                f"{len(self.top_hashtags)} trending hashtags"
            ),
            quotes=quotes,
            citations=citations,
            source=self.source,
            volume=self.volume,
        )


# ─────────────────────────────────────────────────────────────
# YouTube
# ─────────────────────────────────────────────────────────────

POSITIVE_RELEVANCE = 0.6
NEGATIVE_RELEVANCE = 0.4


def _relevance(video: dict[str, Any]) -> float:
    return as_number(video.get("relevance"))


def _relevance_tone(relevance: float) -> str:
    if relevance > POSITIVE_RELEVANCE:
        return "positive"
    if relevance < NEGATIVE_RELEVANCE:
        return "negative"
    return "neutral"


@dataclass(frozen=True)
class YouTubeSignal:
    """Relevance stands in for sentiment: >0.6 positive, 0.4-0.6 neutral."""

    source: ClassVar[str] = "youtube"
    theme: ClassVar[str] = "Video Content & Engagement"

    videos: list[dict[str, Any]] = field(default_factory=list)
    avg_relevance: float = 0.0

    @classmethod
    def parse(cls, raw: Any) -> "YouTubeSignal":
        data = _unwrap(raw)
        return cls(
            videos=as_dicts(data.get("youtube_insights")),
            avg_relevance=as_number(first_present(data, "summary.avg_relevance")),
        )

    @property
    def volume(self) -> int:
        return len(self.videos)

    @property
    def breakdown(self) -> SentimentBreakdown:
        count = self.volume
        if not count:
            return SentimentBreakdown()
        relevances = [_relevance(v) for v in self.videos]
        positive = percent_of(count_where(relevances, lambda r: r > POSITIVE_RELEVANCE), count)
        neutral = percent_of(
            count_where(relevances, lambda r: NEGATIVE_RELEVANCE <= r <= POSITIVE_RELEVANCE),
            count,
        )
        return SentimentBreakdown(
            positive=positive,
            neutral=neutral,
            negative=max(0, 100 - positive - neutral),
        )

    def cluster(self) -> Optional[Cluster]:
        if not self.videos:
            return None

        quotes = [
            Quote(
                text=str(video.get("title") or ""),
                sentiment=_relevance_tone(_relevance(video)),
                source=self.source,
            )
            for video in self.videos[:QUOTES_PER_CLUSTER]
        ]
        citations = []
        for video in self.videos[:CITATIONS_PER_CLUSTER]:
            url = video.get("url")
            if not url:
                url = f"https://youtu.be/{video['videoId']}" if video.get("videoId") else "#"
            citations.append(Citation(
                source="YouTube",
                url=str(url),
                title=str(video.get("title") or ""),
            ))

        return Cluster(
            theme=self.theme,
            sentiment=self.breakdown,
            insight=(
                f"{self.volume} videos analyzed with average relevance of "
                f"{round_half_up(self.avg_relevance * 100)}%"
            ),
            quotes=quotes,
            citations=citations,
            source=self.source,
            volume=self.volume,
        )


# ─────────────────────────────────────────────────────────────
# News
# ─────────────────────────────────────────────────────────────

NEWS_TONE_THRESHOLD = 0.2


def _article_score(article: dict[str, Any]) -> float:
    return as_number(first_present(article, "sentiment_score", "sentiment.score"))


def _article_source(article: dict[str, Any]) -> str:
    source = article.get("source")
    if isinstance(source, dict):
        return str(source.get("name") or "News")
    return str(source or "News")


@dataclass(frozen=True)
class NewsSignal:
    """Article tone: >0.2 positive, |tone| <= 0.2 neutral, rest negative."""

    source: ClassVar[str] = "news"
    theme: ClassVar[str] = "News Coverage & Media Analysis"

    articles: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def parse(cls, raw: Any) -> "NewsSignal":
        data = _unwrap(raw)
        return cls(articles=as_dicts(data.get("articles")))

    @property
    def volume(self) -> int:
        return len(self.articles)

    @property
    def breakdown(self) -> SentimentBreakdown:
        count = self.volume
        if not count:
            return SentimentBreakdown()
        scores = [_article_score(a) for a in self.articles]
        positive = percent_of(count_where(scores, lambda s: s > NEWS_TONE_THRESHOLD), count)
        neutral = percent_of(count_where(scores, lambda s: abs(s) <= NEWS_TONE_THRESHOLD), count)
        return SentimentBreakdown(
            positive=positive,
            neutral=neutral,
            negative=max(0, 100 - positive - neutral),
        )

    def cluster(self) -> Optional[Cluster]:
        if not self.articles:
            return None

        quotes = []
        for article in self.articles[:QUOTES_PER_CLUSTER]:
            score = _article_score(article)
            if score > NEWS_TONE_THRESHOLD:
                tone = "positive"
            elif score < -NEWS_TONE_THRESHOLD:
                tone = "negative"
            else:
                tone = "neutral"
            quotes.append(Quote(
                text=str(article.get("title") or ""),
                sentiment=tone,
                source=self.source,
            ))

        citations = [
            Citation(
                source=_article_source(article),
                url=str(article.get("url") or "#"),
                title=str(article.get("title") or ""),
            )
            for article in self.articles[:CITATIONS_PER_CLUSTER]
        ]
        return Cluster(
            theme=self.theme,
            sentiment=self.breakdown,
            insight=f"{self.volume} news articles analyzed from various sources",
            quotes=quotes,
            citations=citations,
            source=self.source,
            volume=self.volume,
        )


SIGNAL_PARSERS = {
    RedditSignal.source: RedditSignal,
    TwitterSignal.source: TwitterSignal,
    YouTubeSignal.source: YouTubeSignal,
    NewsSignal.source: NewsSignal,
}
