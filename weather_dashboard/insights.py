"""Rule-based weather insights shown on the dashboard.

`compute_insights` produces the record stored with each tracked city and
`dashboard_alerts` the severity-tagged alerts attached to the list view.
Both take the provider's raw `currentConditions` and `days` (index 0 is
today).
"""

from datetime import datetime, timezone

from weather_dashboard.models import Alert, WeatherInsights
from weather_dashboard.weather import FORECAST_DAYS, round_half_up


def _contains(text: str, *keywords: str) -> bool:
    return any(keyword in text for keyword in keywords)


def format_number(value) -> str:
    """Render a number without a trailing '.0' for whole values."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _has_rain_forecast(forecast_days: list[dict]) -> bool:
    for day in forecast_days:
        conditions = (day.get("conditions") or "").lower()
        if _contains(conditions, "rain", "shower"):
            return True
        precip_prob = day.get("precipprob")
        if precip_prob is not None and precip_prob > 50:
            return True
    return False


def _summary(temp: float, condition: str, humidity) -> str:
    t = round_half_up(temp)
    h = format_number(humidity)
    if temp > 40:
        return f"Extreme heat at {t}°C — dangerous outdoor conditions."
    if temp > 35:
        return f"Very hot at {t}°C with {condition}. Humidity at {h}%."
    if temp > 25:
        return f"Warm day at {t}°C with {condition}. Humidity is {h}%."
    if temp > 15:
        return f"Pleasant {t}°C with {condition}. Humidity at {h}%."
    if temp > 5:
        return f"Cool weather at {t}°C. {condition}. Humidity is {h}%."
    return f"Cold conditions at {t}°C with {condition}. Stay warm."


def _prediction(forecast_days: list[dict], rain_forecast: bool) -> str:
    temps = [day.get("tempmax") or 0 for day in forecast_days]
    delta = temps[-1] - temps[0] if temps else 0

    if rain_forecast and delta < -2:
        return "Rain likely with a cooling trend over the next few days."
    if rain_forecast:
        return "Rain likely in coming days."
    if delta > 3:
        return "Warming trend expected over the next few days."
    if delta < -3:
        return "Cooling trend expected over the next few days."
    return "Temperatures expected to remain stable over the next few days."


def compute_insights(current: dict, days: list[dict]) -> WeatherInsights:
    temp = current.get("temp") or 0
    humidity = current.get("humidity") or 0
    condition = (current.get("conditions") or "").lower()
    forecast_days = days[1:FORECAST_DAYS + 1]

    rain_forecast = _has_rain_forecast(forecast_days)
    is_raining = _contains(condition, "rain", "drizzle", "shower")
    is_stormy = _contains(condition, "thunder", "storm")
    is_snowy = _contains(condition, "snow", "blizzard")
    is_foggy = _contains(condition, "fog", "mist")
    is_clear = _contains(condition, "clear", "sun")

    alerts = []
    if temp > 35:
        alerts.append("High heat warning")
    if temp < 10:
        alerts.append("Cold weather alert")
    if humidity > 80:
        alerts.append("High humidity discomfort expected")
    if rain_forecast:
        alerts.append("Rain expected in coming days")
    if is_stormy:
        alerts.append("Thunderstorm warning")
    if is_snowy:
        alerts.append("Snowfall alert")
    if is_foggy:
        alerts.append("Low visibility warning")

    # First matching rule wins
    if is_stormy:
        recommendation = "Avoid outdoor activity. Stay indoors during the storm."
    elif is_raining or rain_forecast:
        recommendation = "Carry an umbrella when going out."
    elif is_snowy:
        recommendation = "Wear warm clothing and drive with caution."
    elif is_foggy:
        recommendation = "Drive slowly — low visibility expected."
    elif temp > 35:
        recommendation = "Avoid outdoor activity in the afternoon. Stay hydrated."
    elif temp < 10:
        recommendation = "Wear warm clothing when going outside."
    elif is_clear and 15 <= temp <= 30:
        recommendation = "Great conditions for outdoor activity."
    else:
        recommendation = "Weather conditions are favorable."

    return WeatherInsights(
        summary=_summary(temp, condition, humidity),
        prediction=_prediction(forecast_days, rain_forecast),
        alerts=alerts,
        recommendation=recommendation,
        last_updated=datetime.now(timezone.utc),
    )


def dashboard_alerts(current: dict, days: list[dict]) -> list[Alert]:
    temp = current.get("temp") or 0
    condition = (current.get("conditions") or "").lower()
    alerts = []

    if temp > 35:
        alerts.append(Alert(type="danger", message="🌡️ High temperature warning — stay hydrated"))
    if temp < 10:
        alerts.append(Alert(type="info", message="🥶 Cold weather warning — dress warmly"))

    # Unlike compute_insights, today counts towards the rain check here
    if any("rain" in (day.get("conditions") or "").lower() for day in days[:FORECAST_DAYS]):
        alerts.append(Alert(type="info", message="🌧️ Rain expected in the coming days"))

    if _contains(condition, "clear", "sun") and temp > 30:
        alerts.append(Alert(type="warning", message="☀️ High sunlight exposure — use sunscreen"))

    return alerts
