"""Media creation tools: image, video, music and speech."""

import logging
from typing import (
    Any,
    List,
)

from vesper.core.schema import ToolResult
from vesper.tools import (
    FunctionTool,
    function_tool,
)
from vesper.tools.providers import (
    GenerationProvider,
    ProviderSet,
)

logger = logging.getLogger(__name__)

URL_FIELDS = {
    "image": "image_url",
    "video": "video_url",
    "audio": "audio_url",
    "speech": "audio_url",
}


async def run_provider(
    provider: GenerationProvider, kind: str, prompt: str, **options: Any
) -> ToolResult:
    """Call *provider* and translate its :class:`ProviderResult` into a :class:`ToolResult`."""
    logger.info("Generating %s with %s", kind, provider.name)
    result = await provider.generate(prompt, **options)
    if not result.ok:
        return ToolResult.failure(
            result.error or f"{provider.name} returned no {kind}", provider=provider.name
        )
    payload = {URL_FIELDS[kind]: result.url, "provider": result.provider or provider.name}
    if result.caption:
        payload["caption"] = result.caption
    return ToolResult(
        success=True, data=f"Created the {kind} with {payload['provider']}", **payload
    )


async def generate_media(
    providers: ProviderSet, kind: str, prompt: str, provider_name: str | None = None, **options: Any
) -> ToolResult:
    """Generate with *provider_name*, or with the primary provider of *kind* when not given."""
    provider = providers.get(kind, provider_name)
    if provider is None:
        available = ", ".join(providers.order(kind)) or "none"
        wanted = provider_name or "default"
        return ToolResult.failure(
            f"No {kind} provider '{wanted}' is configured (available: {available})"
        )
    return await run_provider(provider, kind, prompt, **options)


def creation_tools(providers: ProviderSet) -> List[FunctionTool]:
    """Build the creation tools bound to *providers*."""

    image_options = {
        "prompt": {"description": "Description of the image to create"},
        "provider": {
            "description": "Optional provider to use",
            "enum": providers.order("image") or None,
        },
    }

    @function_tool(
        "create_image",
        "Create an image from a text description. Use for any request to draw, generate or "
        "illustrate something.",
        params=image_options,
    )
    async def create_image(prompt: str, provider: str | None = None) -> ToolResult:
        return await generate_media(providers, "image", prompt, provider)

    @function_tool(
        "create_video",
        "Create a short video from a text description.",
        params={
            "prompt": {"description": "Description of the video to create"},
            "provider": {
                "description": "Optional provider to use",
                "enum": providers.order("video") or None,
            },
        },
    )
    async def create_video(prompt: str, provider: str | None = None) -> ToolResult:
        return await generate_media(providers, "video", prompt, provider)

    @function_tool(
        "create_music",
        "Create a song or a piece of music from a description of its mood, genre and lyrics.",
        params={"prompt": {"description": "Description of the music"}},
    )
    async def create_music(prompt: str) -> ToolResult:
        return await generate_media(providers, "audio", prompt)

    @function_tool(
        "text_to_speech",
        "Read a text aloud and return an audio file.",
        params={
            "text": {"description": "The exact text to speak"},
            "voice": {"description": "Optional voice identifier"},
        },
    )
    async def text_to_speech(text: str, voice: str | None = None) -> ToolResult:
        if providers.speech is None:
            return ToolResult.failure("No speech provider is configured")
        options = {"voice": voice} if voice else {}
        return await run_provider(providers.speech, "speech", text, **options)

    return [create_image, create_video, create_music, text_to_speech]
