# sentiment.py - Market sentiment verdicts for the engine's sentiment gate.
"""
The engine only asks two questions: is sentiment positive (gate for LONG
entries) or negative (gate for SHORT entries)?

Implementations:
- StaticSentiment: fixed answer, used by replay so runs stay deterministic
- LLMSentimentAnalyzer: asks an OpenAI-compatible chat model for a score

A score is a float in [-1, 1]. Positive means score >= threshold,
negative means score <= -threshold.
"""

import json
import os
from abc import ABC, abstractmethod

from openai import OpenAI


SENTIMENT_THRESHOLD = 0.6


class SentimentAnalyzer(ABC):

    @abstractmethod
    def is_positive(self, symbol: str) -> bool:
        ...

    @abstractmethod
    def is_negative(self, symbol: str) -> bool:
        ...


class StaticSentiment(SentimentAnalyzer):
    """Always agrees with the given direction(s)."""

    def __init__(self, positive: bool = True, negative: bool = True):
        self.positive = positive
        self.negative = negative

    def is_positive(self, symbol: str) -> bool:
        return self.positive

    def is_negative(self, symbol: str) -> bool:
        return self.negative


class LLMSentimentAnalyzer(SentimentAnalyzer):
    """
    Scores sentiment with a chat model through the OpenAI client.

    Any API or parsing failure counts as "no agreement" so the gate stays
    closed; the error is printed, never raised into the trading cycle.
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    SYSTEM_PROMPT = (
        "You are a crypto market sentiment rater. Reply with JSON only, in the form "
        '{"score": <float between -1 and 1>} where -1 is extremely bearish and 1 is '
        "extremely bullish for the given futures symbol over the next few days."
    )

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        threshold: float = SENTIMENT_THRESHOLD,
    ):
        self.api_key = api_key or os.getenv("SENTIMENT_API_KEY")
        self.base_url = base_url or os.getenv("SENTIMENT_BASE_URL") or None
        self.model_name = model or os.getenv("SENTIMENT_MODEL", self.DEFAULT_MODEL)
        self.threshold = threshold

        if not self.api_key:
            raise ValueError("SENTIMENT_API_KEY not set in environment")

        self.client = OpenAI(api_key=self.api_key, base_url=self.base_url)

    def score(self, symbol: str) -> float | None:
        """Raw score in [-1, 1], or None if the model could not be reached or parsed."""
        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": f"Symbol: {symbol}"},
                ],
                temperature=0,
            )
            content = response.choices[0].message.content or ""
            value = float(json.loads(content)["score"])
        except Exception as e:
            print(f"[Sentiment] Error scoring {symbol}: {e}")
            return None

        return max(-1.0, min(1.0, value))

    def is_positive(self, symbol: str) -> bool:
        value = self.score(symbol)
        return value is not None and value >= self.threshold

    def is_negative(self, symbol: str) -> bool:
        value = self.score(symbol)
        return value is not None and value <= -self.threshold
