"""
Tile Analyzer - LLM synthesis over already-fetched tile data.

Calls an OpenAI-compatible chat completions endpoint (Groq by
default) in JSON mode and returns the parsed analysis. The model
sometimes wraps its JSON in fences or adds commentary; the
extraction below tolerates both.
"""

import json
import logging
import re
from typing import Any, Optional

import aiohttp

from core.config import LLMConfig
from core.exceptions import MissingConfigError

from ..exceptions import AuthenticationError, FetchError, ParseError, RateLimitError


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are a strategic business analyst. Analyze the data for a startup idea and provide actionable insights.

Your response must be valid JSON with this exact structure:
{
  "keyInsights": [
    {
      "type": "opportunity|risk|strength|weakness",
      "title": "Insight title",
      "description": "Detailed explanation",
      "impact": "high|medium|low",
      "confidence": 80
    }
  ],
  "strategicRecommendations": ["Specific, actionable recommendation"],
  "marketInterpretation": "What this data means for the startup's potential (2-3 sentences)",
  "competitivePosition": "How the startup should position itself based on this data",
  "criticalSuccessFactors": ["Factor for success"],
  "nextSteps": [
    {
      "action": "Specific action to take",
      "priority": "high|medium|low",
      "timeline": "immediate|short-term|long-term"
    }
  ],
  "pmfSignals": {
    "positive": ["Signal"],
    "negative": ["Challenge"],
    "overallAssessment": "Strong|Moderate|Weak PMF potential because..."
  }
}"""

USER_PROMPT = """Startup Idea: {idea}

Analyzing {tile_type} data:
{tile_data}

Provide deep strategic analysis of what this data means for the startup's potential.
Focus on actionable insights and specific recommendations.
Be realistic but constructive."""

ANALYSIS_LIST_KEYS = (
    "keyInsights",
    "strategicRecommendations",
    "criticalSuccessFactors",
    "nextSteps",
)


_JSON_FENCE_RE = re.compile(
    r"```(?:json)?\s*(\{.*?\}|\[.*?\])\s*```",
    re.DOTALL | re.IGNORECASE,
)

_FIRST_JSON_OBJ_RE = re.compile(
    r"(\{.*\}|\[.*\])",
    re.DOTALL,
)

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def extract_json_text(raw: str) -> Optional[str]:
    """Pull the JSON object/array out of fenced or chatty model output."""
    if not raw or not isinstance(raw, str):
        return None

    m = _JSON_FENCE_RE.search(raw)
    if m:
        return m.group(1).strip()

    m = _FIRST_JSON_OBJ_RE.search(raw.strip())
    if m:
        return m.group(1).strip()

    return None


def safe_json_loads(raw: str) -> Optional[Any]:
    """Best-effort JSON parsing; drops trailing commas on a second try."""
    text = extract_json_text(raw) or raw
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass
    try:
        return json.loads(_TRAILING_COMMA_RE.sub(r"\1", text))
    except (TypeError, ValueError):
        return None


class TileAnalyzer:
    """
    Strategic analysis of one tile's data.

    Usage:
        analyzer = TileAnalyzer(LLMConfig(api_key="..."))
        analysis = await analyzer.analyze("market_size", tile.to_dict(), idea)
    """

    def __init__(self, config: LLMConfig) -> None:
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def build_messages(
        self,
        tile_type: str,
        tile_data: dict[str, Any],
        idea_text: str,
    ) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": USER_PROMPT.format(
                    idea=idea_text,
                    tile_type=tile_type,
                    tile_data=json.dumps(tile_data, indent=2, default=str),
                ),
            },
        ]

    async def analyze(
        self,
        tile_type: str,
        tile_data: dict[str, Any],
        idea_text: str,
    ) -> dict[str, Any]:
        """
        Run the analysis pass.

        Raises:
            MissingConfigError: no API key configured
            FetchError, RateLimitError, AuthenticationError: HTTP failure
            ParseError: the model's answer held no usable JSON
        """
        if not self.enabled:
            raise MissingConfigError("GROQ_API_KEY")

        url = f"{self.config.base_url.rstrip('/')}/chat/completions"
        payload = {
            "model": self.config.model,
            "messages": self.build_messages(tile_type, tile_data, idea_text),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

        session = await self._get_session()
        try:
            async with session.post(url, json=payload, headers=headers) as response:
                if response.status == 429:
                    raise RateLimitError("LLM rate limit exceeded", source_name="llm")
                if response.status in (401, 403):
                    raise AuthenticationError("LLM rejected credentials", source_name="llm")
                if response.status != 200:
                    text = await response.text()
                    raise FetchError(
                        f"LLM API error: {response.status}",
                        source_name="llm",
                        status_code=response.status,
                        url=url,
                        details={"response": text[:500]},
                    )
                data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise FetchError(f"Network error: {e}", source_name="llm", url=url)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ParseError("LLM response had no message content", source_name="llm")

        analysis = safe_json_loads(content)
        if not isinstance(analysis, dict):
            raise ParseError(
                "LLM answer was not a JSON object",
                source_name="llm",
                raw_data=content,
            )

        logger.info(f"[llm] Analyzed {tile_type} tile")
        return self._with_defaults(analysis)

    @staticmethod
    def _with_defaults(analysis: dict[str, Any]) -> dict[str, Any]:
        for key in ANALYSIS_LIST_KEYS:
            if not isinstance(analysis.get(key), list):
                analysis[key] = []
        analysis.setdefault("marketInterpretation", "")
        analysis.setdefault("competitivePosition", "")
        if not isinstance(analysis.get("pmfSignals"), dict):
            analysis["pmfSignals"] = {"positive": [], "negative": [], "overallAssessment": ""}
        return analysis

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
