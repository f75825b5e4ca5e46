"""
OpenAI API client
"""

import json
import re
from typing import Optional, Dict, Any, List
from openai import AsyncOpenAI
from taskflow.config.settings import settings
from taskflow.config.constants import (
    OPENAI_DEFAULT_MODEL,
    OPENAI_FALLBACK_MODEL,
    OPENAI_MAX_TOKENS,
    OPENAI_TEMPERATURE,
)
from taskflow.models.response import GeneratedDescription
from taskflow.utils.logger import logger


class OpenAIClient:
    """Client for OpenAI API"""

    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        """
        Initialize OpenAI client

        Args:
            api_key: API key (defaults to OPENAI_API_KEY)
            client: Preconfigured AsyncOpenAI instance
        """
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.client = client or AsyncOpenAI(api_key=self.api_key)
        self.model = OPENAI_DEFAULT_MODEL
        self.fallback_model = OPENAI_FALLBACK_MODEL
        self.logger = logger

    async def _create(self, model: Optional[str] = None, **kwargs):
        """Create a completion, retrying once on the fallback model"""
        model = model or self.model
        try:
            self.logger.debug(f"Calling OpenAI API with model {model}")
            return await self.client.chat.completions.create(model=model, **kwargs)
        except Exception as e:
            self.logger.error(f"OpenAI API error: {e}")

            if model != self.fallback_model:
                self.logger.warning(f"Trying fallback model {self.fallback_model}")
                return await self._create(model=self.fallback_model, **kwargs)

            raise

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: float = OPENAI_TEMPERATURE,
        max_tokens: int = OPENAI_MAX_TOKENS,
        json_mode: bool = False,
    ) -> str:
        """
        Get chat completion from OpenAI

        Args:
            messages: List of message dictionaries with 'role' and 'content'
            model: Model to use (defaults to configured model)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            json_mode: Ask for a JSON object response

        Returns:
            Response text

        Raises:
            Exception: If API call fails on both models
        """
        kwargs: Dict[str, Any] = {
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._create(model=model, **kwargs)
        content = response.choices[0].message.content or ""
        self.logger.debug(f"OpenAI API response: {content[:100]}...")
        return content

    async def chat_with_tools(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        temperature: float = OPENAI_TEMPERATURE,
        max_tokens: int = OPENAI_MAX_TOKENS,
    ):
        """
        Run one completion round with a tool menu

        Args:
            messages: Conversation so far, including tool results
            tools: OpenAI function tool schemas
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response

        Returns:
            Assistant message (content and/or tool_calls)
        """
        response = await self._create(
            messages=messages,
            tools=tools,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message

    async def generate_todo_description(self, prompt: str) -> GeneratedDescription:
        """
        Generate a todo description and clarifying questions

        Args:
            prompt: Prompt containing the todo title

        Returns:
            GeneratedDescription

        Raises:
            ValueError: If the response is not the expected JSON object
        """
        response = await self.chat_completion(
            messages=[
                {"role": "system", "content": "Respond with a JSON object only."},
                {"role": "user", "content": prompt},
            ],
            json_mode=True,
        )

        json_str = response.strip()
        if json_str.startswith("```"):
            json_str = re.sub(r"^```(?:json)?", "", json_str)
            json_str = re.sub(r"```$", "", json_str).strip()

        try:
            parsed = json.loads(json_str)
        except json.JSONDecodeError as e:
            self.logger.error(f"Failed to parse JSON: {json_str[:200]}")
            raise ValueError(f"Could not parse description response: {e}") from e

        return GeneratedDescription.model_validate(parsed)

    async def close(self):
        """Close HTTP client"""
        await self.client.close()
