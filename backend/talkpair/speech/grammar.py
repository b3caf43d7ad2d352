# talkpair/speech/grammar.py
import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

PROMPT = """Analyze the following English text for grammar and fluency. \
Provide corrections and explanations for any mistakes. Respond with a JSON object:
{
  "correctedText": "the corrected version of the text",
  "mistakes": [
    {
      "original": "incorrect text",
      "corrected": "corrected text",
      "explanation": "why it was corrected",
      "position": {"start": 0, "end": 10}
    }
  ],
  "overallScore": 85,
  "suggestions": ["suggestion for improvement"]
}

Text to analyze:
"""


class GrammarAnalysisError(Exception):
    pass


@dataclass
class GrammarAnalysis:
    corrected_text: str = ""
    mistakes: list = field(default_factory=list)
    overall_score: Optional[int] = None
    suggestions: list = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict) -> "GrammarAnalysis":
        if not isinstance(data, dict):
            raise GrammarAnalysisError("analysis must be a JSON object")

        score = data.get("overallScore")
        try:
            score = int(score) if score is not None else None
        except (TypeError, ValueError):
            score = None

        mistakes = data.get("mistakes") or []
        suggestions = data.get("suggestions") or []
        return cls(
            corrected_text=str(data.get("correctedText") or ""),
            mistakes=[m for m in mistakes if isinstance(m, dict)],
            overall_score=score,
            suggestions=[str(s) for s in suggestions],
        )


class OpenAIGrammarAnalyzer:
    def __init__(self, api_key: Optional[str] = None, *, model: Optional[str] = None, client=None):
        self.model = model or settings.GRAMMAR_MODEL
        self._api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise GrammarAnalysisError("OPENAI_API_KEY not set")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def analyze(self, text: str) -> GrammarAnalysis:
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": PROMPT + text}],
            response_format={"type": "json_object"},
            temperature=0.7,
            max_tokens=1000,
        )
        content = completion.choices[0].message.content or ""
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise GrammarAnalysisError(f"analysis is not valid JSON: {e}") from e
        return GrammarAnalysis.from_payload(data)
