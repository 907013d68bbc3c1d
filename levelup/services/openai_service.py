"""OpenAI adapters for chat completion and text-to-speech.

Which adapter runs is decided once at startup from configuration: with an API
key the OpenAI-backed adapters are used, without one the chat coach answers
with a fixed demo reply and audio generation is disabled.
"""
import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from levelup.core.config import Settings
from levelup.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

EMPTY_COMPLETION = "Sorry, I could not generate a response."

CANNED_REPLY = """Thanks for your message! I'm your Level Up management development assistant.

Since this is a demo environment, I can't provide real-time AI responses, but in the full version I would help you with:

• **Leadership Challenges**: Navigate difficult team situations with proven frameworks
• **Delegation Mastery**: Learn when and how to delegate effectively
• **Feedback Techniques**: Give constructive feedback that motivates growth
• **Meeting Optimization**: Run more productive and engaging meetings

To unlock full conversational AI features, configure a valid OpenAI API key in your environment."""


def _format_messages(system_prompt: Optional[str], messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
    formatted = []
    if system_prompt:
        formatted.append({"role": "system", "content": system_prompt})
    formatted.extend({"role": m["role"], "content": m["content"]} for m in messages)
    return formatted


class OpenAIChatProvider:
    """Chat completion through the OpenAI API."""

    def __init__(self, client: AsyncOpenAI, model: str, max_tokens: int = 1024, temperature: float = 0.7):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def complete(self, system_prompt: Optional[str], messages: List[Dict[str, str]]) -> str:
        """
        Get a single complete reply.

        Args:
            system_prompt: Instructions sent as the leading system message
            messages: Conversation so far as dicts with 'role' and 'content'

        Returns:
            The assistant's reply text

        Raises:
            UpstreamUnavailable: the API call failed or timed out
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=_format_messages(system_prompt, messages),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except OpenAIError as exc:
            logger.exception("OpenAI chat completion failed")
            raise UpstreamUnavailable() from exc

        if not response.choices:
            return EMPTY_COMPLETION
        return response.choices[0].message.content or EMPTY_COMPLETION

    async def stream(self, system_prompt: Optional[str], messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """Yield reply tokens in generation order."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=_format_messages(system_prompt, messages),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stream=True,
            )
            async for chunk in response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except OpenAIError as exc:
            logger.exception("OpenAI chat stream failed")
            raise UpstreamUnavailable() from exc


class CannedChatProvider:
    """Fixed demo reply used when no API key is configured."""

    def __init__(self, reply: str = CANNED_REPLY, stream_delay: float = 0.05):
        self.reply = reply
        self.stream_delay = stream_delay

    async def complete(self, system_prompt: Optional[str], messages: List[Dict[str, str]]) -> str:
        return self.reply

    async def stream(self, system_prompt: Optional[str], messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        for i, word in enumerate(self.reply.split(" ")):
            yield word if i == 0 else " " + word
            if self.stream_delay:
                await asyncio.sleep(self.stream_delay)


class OpenAISpeechProvider:
    """Text-to-speech through the OpenAI API."""

    def __init__(self, client: AsyncOpenAI, model: str = "tts-1", hd_model: str = "tts-1-hd"):
        self.client = client
        self.model = model
        self.hd_model = hd_model

    async def synthesize(self, text: str, voice: str = "alloy", hd: bool = False) -> bytes:
        """Return mp3 bytes for `text`."""
        try:
            response = await self.client.audio.speech.create(
                model=self.hd_model if hd else self.model,
                voice=voice,
                input=text,
                response_format="mp3",
            )
        except OpenAIError as exc:
            logger.exception("OpenAI speech generation failed")
            raise UpstreamUnavailable("Failed to generate audio") from exc
        return response.content


class DisabledSpeechProvider:
    async def synthesize(self, text: str, voice: str = "alloy", hd: bool = False) -> bytes:
        logger.info("Audio generation disabled - OpenAI API key not configured")
        raise UpstreamUnavailable("Audio generation requires a valid OpenAI API key")


def build_openai_client(settings: Settings) -> Optional[AsyncOpenAI]:
    if not settings.OPENAI_API_KEY:
        return None
    return AsyncOpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=settings.OPENAI_TIMEOUT_SECS,
        max_retries=settings.OPENAI_MAX_RETRIES,
    )


def build_chat_provider(settings: Settings, client: Optional[AsyncOpenAI]):
    if client is None:
        logger.warning("OPENAI_API_KEY not set, chat coach will answer with a demo reply")
        return CannedChatProvider(stream_delay=settings.CHAT_CANNED_STREAM_DELAY)
    return OpenAIChatProvider(
        client,
        model=settings.OPENAI_MODEL,
        max_tokens=settings.OPENAI_MAX_TOKENS,
        temperature=settings.OPENAI_TEMPERATURE,
    )


def build_speech_provider(settings: Settings, client: Optional[AsyncOpenAI]):
    if client is None:
        return DisabledSpeechProvider()
    return OpenAISpeechProvider(client, model=settings.TTS_MODEL, hd_model=settings.TTS_HD_MODEL)
