import logging

from openai import AsyncAzureOpenAI

from weather_dashboard import config

logger = logging.getLogger(__name__)


class AnalysisError(Exception):
    pass


def make_chat_client() -> AsyncAzureOpenAI:
    return AsyncAzureOpenAI(
        azure_endpoint=config.PROJECT_ENDPOINT,
        api_key=config.AZURE_AI_API_KEY,
        api_version=config.AZURE_API_VERSION,
    )


async def complete(
    chat_client: AsyncAzureOpenAI,
    messages: list[dict],
    temperature: float,
    label: str,
) -> str:
    """Run one chat completion and return the reply text unchanged.

    Any client failure or an empty reply raises AnalysisError.
    """
    try:
        response = await chat_client.chat.completions.create(
            model=config.MODEL_DEPLOYMENT_NAME,
            messages=messages,
            temperature=temperature,
        )
    except Exception as exc:
        logger.error("LLM call failed (%s): %s", label, exc)
        raise AnalysisError("model unavailable") from exc

    content = response.choices[0].message.content
    if not content:
        logger.error("LLM returned empty content (%s)", label)
        raise AnalysisError("LLM returned empty content")

    return content
