import logging

from openai import AsyncAzureOpenAI

from weather_dashboard.insights import format_number
from weather_dashboard.llm import complete
from weather_dashboard.models import ChatCity
from weather_dashboard.prompts import CHAT_SYSTEM_PROMPT, NO_CITIES_CONTEXT

CHAT_TEMPERATURE = 0.5

logger = logging.getLogger(__name__)


def _with_unit(value, unit: str) -> str:
    return "N/A" if value is None else f"{format_number(value)}{unit}"


def _city_line(city: ChatCity) -> str:
    place = f"{city.name}, {city.country}" if city.country else city.name
    line = (
        f"- {place}: {_with_unit(city.temp, '°C')}, {city.condition or 'N/A'}, "
        f"humidity {_with_unit(city.humidity, '%')}, wind {_with_unit(city.wind_speed, ' km/h')}."
    )
    insights = city.insights
    if insights:
        if insights.prediction:
            line += f" Prediction: {insights.prediction}"
        if insights.alerts:
            line += f" Alerts: {', '.join(insights.alerts)}."
        if insights.recommendation:
            line += f" Tip: {insights.recommendation}"
    return line


def build_chat_system_prompt(cities: list[ChatCity]) -> str:
    if cities:
        context = "\n".join(_city_line(city) for city in cities)
    else:
        context = NO_CITIES_CONTEXT
    return CHAT_SYSTEM_PROMPT.format(context=context)


def _build_messages(message: str, cities: list[ChatCity]) -> list[dict]:
    return [
        {"role": "system", "content": build_chat_system_prompt(cities)},
        {"role": "user", "content": message},
    ]


async def run_chat(message: str, cities: list[ChatCity], chat_client: AsyncAzureOpenAI) -> str:
    logger.info("Chat invoked: message=%r, cities=%d", message[:80], len(cities))
    reply = await complete(
        chat_client,
        _build_messages(message, cities),
        temperature=CHAT_TEMPERATURE,
        label="chat",
    )
    logger.info("Chat reply: %r", reply[:120])
    return reply
