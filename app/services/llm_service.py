import logging
from typing import Dict, List

import openai
from tenacity import retry, stop_after_attempt, wait_exponential

from app.core.config import settings

logger = logging.getLogger(__name__)


class LLMNotConfigured(RuntimeError):
    pass


class LLMService:
    def __init__(self):
        self.api_key = settings.OPENAI_API_KEY
        self.base_url = settings.OPENAI_BASE_URL
        self.model = settings.OPENAI_MODEL

        if not self.api_key:
            raise LLMNotConfigured("OPENAI_API_KEY is not set")

        # base_url lets us point at any OpenAI-compatible server
        self.client = openai.OpenAI(api_key=self.api_key, base_url=self.base_url)

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=4, max=10))
    def chat(self, system_prompt: str, history: List[Dict[str, str]], max_tokens: int = 400) -> str:
        """
        history: [{"role": "user"|"assistant", "content": "..."}] oldest first.
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": system_prompt}] + history,
                temperature=0.7,
                max_tokens=max_tokens,
                stream=False,
            )
            return response.choices[0].message.content.strip()
        except Exception as e:
            logger.error(f"LLM Error: {e}")
            raise

    def generate_outreach(self, system_prompt: str, user_context: str, max_tokens: int = 300) -> str:
        """Generates campaign copy (subject + body) from a short brief."""
        return self.chat(system_prompt, [{"role": "user", "content": user_context}], max_tokens=max_tokens)
