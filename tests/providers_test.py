from __future__ import annotations

from datetime import datetime, timezone

import pytest
import requests
import responses

from meteohub.providers.base import (
    AuthError,
    LocationNotFound,
    MalformedPayload,
    NetworkError,
    ProviderError,
    QuotaExceeded,
)
from meteohub.providers.meteofrance import MeteoFranceProvider
from meteohub.providers.openmeteo import OpenMeteoProvider, describe_code
from meteohub.providers.openweathermap import OpenWeatherMapProvider, owm_group
from meteohub.providers.weatherapi import WeatherAPIProvider, condition_group, map_language


OPENMETEO_URL = "https://openmeteo.test/v1/forecast"
GEOCODING_URL = "https://geocoding.test/v1/search"
WEATHERAPI_URL = "https://weatherapi.test/v1"
OWM_URL = "https://owm.test/data/2.5/weather"
METEOFRANCE_URL = "https://meteofrance.test/public"

NOON = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
NOON_EPOCH = 1717243200

OPENMETEO_CURRENT = {
    "current": {
        "time": "2024-06-01T12:00",
        "temperature_2m": 21.4,
        "relative_humidity_2m": 55,
        "apparent_temperature": 20.9,
        "precipitation": 0.4,
        "pressure_msl": 1016.2,
        "cloud_cover": 40,
        "wind_speed_10m": 18.0,
        "wind_direction_10m": 225,
        "weather_code": 2,
    },
    "daily": {
        "time": ["2024-06-01"],
        "temperature_2m_max": [24.0],
        "temperature_2m_min": [14.5],
    },
}


def _openmeteo() -> OpenMeteoProvider:
    return OpenMeteoProvider(base_url=OPENMETEO_URL, geocoding_url=GEOCODING_URL)


# Open-Meteo ---------------------------------------------------------------
def test_openmeteo_current_normalization(requests_mock):
    requests_mock.get(OPENMETEO_URL, json=OPENMETEO_CURRENT)

    observation = _openmeteo().fetch_by_coordinates(48.85, 2.35)

    assert observation.provider == "openmeteo"
    assert observation.latitude == 48.85
    assert observation.temperature_c == 21.4
    assert observation.feels_like_c == 20.9
    assert observation.precipitation_mm == 0.4
    assert observation.humidity_pct == 55
    assert observation.wind_speed_ms == pytest.approx(5.0)
    assert observation.wind_direction_deg == 225
    assert observation.condition == "Clouds"
    assert observation.description == "partly cloudy"
    assert observation.temp_min_c == 14.5
    assert observation.temp_max_c == 24.0
    assert observation.observed_at == NOON
    assert requests_mock.last_request.qs["forecast_days"] == ["1"]
    assert "precipitation" in requests_mock.last_request.qs["current"][0].split(",")


def test_openmeteo_fetch_by_name_geocodes_first(requests_mock):
    requests_mock.get(
        GEOCODING_URL,
        json={"results": [{"latitude": 52.52, "longitude": 13.41, "name": "Berlin", "country_code": "DE"}]},
    )
    requests_mock.get(OPENMETEO_URL, json=OPENMETEO_CURRENT)

    observation = _openmeteo().fetch_by_name("Berlin")

    assert observation.location_name == "Berlin"
    assert observation.country == "DE"
    assert observation.latitude == 52.52
    assert requests_mock.call_count == 2


def test_openmeteo_unknown_city(requests_mock):
    requests_mock.get(GEOCODING_URL, json={})

    with pytest.raises(LocationNotFound):
        _openmeteo().fetch_by_name("Atlantis")


def test_openmeteo_daily_forecast(requests_mock):
    requests_mock.get(
        OPENMETEO_URL,
        json={
            "daily": {
                "time": ["2024-06-01", "2024-06-02", "2024-06-03"],
                "weather_code": [0, 61, None],
                "temperature_2m_max": [24.0, 18.0, 20.0],
                "temperature_2m_min": [14.0, 12.0, 11.0],
                "precipitation_sum": [0.0, 5.2, 0.0],
                "wind_speed_10m_max": [36.0, 18.0, 9.0],
            }
        },
    )

    forecast = _openmeteo().fetch_forecast(48.85, 2.35)

    assert len(forecast) == 2
    assert forecast[0].timestamp == datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert forecast[0].temperature_c == 19.0
    assert forecast[0].condition == "Clear"
    assert forecast[1].condition == "Rain"
    assert forecast[1].precipitation_mm == 5.2
    assert forecast[0].wind_speed_ms == pytest.approx(10.0)


def test_unknown_wmo_code_is_not_defaulted():
    assert describe_code(42) == ("Unknown", "weather code 42")


# Shared HTTP error handling ----------------------------------------------
@pytest.mark.parametrize(
    "status, error",
    [
        (401, AuthError),
        (403, AuthError),
        (404, LocationNotFound),
        (429, QuotaExceeded),
    ],
)
def test_http_errors_are_typed(requests_mock, status, error):
    requests_mock.get(OPENMETEO_URL, status_code=status, text="nope")

    with pytest.raises(error):
        _openmeteo().fetch_by_coordinates(48.85, 2.35)


def test_server_error_is_a_plain_provider_error(requests_mock):
    requests_mock.get(OPENMETEO_URL, status_code=502, text="bad gateway")

    with pytest.raises(ProviderError) as excinfo:
        _openmeteo().fetch_by_coordinates(48.85, 2.35)

    assert type(excinfo.value) is ProviderError
    assert str(excinfo.value) == "openmeteo: HTTP 502"


@pytest.mark.parametrize("exc", [requests.exceptions.ConnectTimeout, requests.exceptions.ConnectionError])
def test_transport_failures_are_network_errors(requests_mock, exc):
    requests_mock.get(OPENMETEO_URL, exc=exc)

    with pytest.raises(NetworkError):
        _openmeteo().fetch_by_coordinates(48.85, 2.35)


def test_invalid_json_is_malformed(requests_mock):
    requests_mock.get(OPENMETEO_URL, text="<html>oops</html>")

    with pytest.raises(MalformedPayload):
        _openmeteo().fetch_by_coordinates(48.85, 2.35)


def test_schema_mismatch_is_malformed(requests_mock):
    requests_mock.get(OPENMETEO_URL, json={"current": {"time": "2024-06-01T12:00"}})

    with pytest.raises(MalformedPayload):
        _openmeteo().fetch_by_coordinates(48.85, 2.35)


def _with_wind_direction(degrees):
    return {**OPENMETEO_CURRENT, "current": {**OPENMETEO_CURRENT["current"], "wind_direction_10m": degrees}}


@pytest.mark.parametrize("degrees, expected", [(0, 0.0), (359.5, 359.5), (360, 0.0)])
def test_wind_direction_is_kept_in_range(requests_mock, degrees, expected):
    requests_mock.get(OPENMETEO_URL, json=_with_wind_direction(degrees))

    assert _openmeteo().fetch_by_coordinates(48.85, 2.35).wind_direction_deg == expected


@pytest.mark.parametrize("degrees", [370, -10])
def test_out_of_range_wind_direction_is_malformed(requests_mock, degrees):
    requests_mock.get(OPENMETEO_URL, json=_with_wind_direction(degrees))

    with pytest.raises(MalformedPayload) as excinfo:
        _openmeteo().fetch_by_coordinates(48.85, 2.35)

    assert excinfo.value.provider == "openmeteo"


def test_probe_marks_provider_unavailable(requests_mock):
    provider = _openmeteo()
    requests_mock.get(OPENMETEO_URL, status_code=503)

    assert provider.probe_availability() is False
    assert provider.is_available is False

    requests_mock.get(OPENMETEO_URL, json={})

    assert provider.probe_availability() is True
    assert provider.is_available is True


# WeatherAPI ---------------------------------------------------------------
def test_weatherapi_current_normalization(requests_mock):
    requests_mock.get(
        f"{WEATHERAPI_URL}/current.json",
        json={
            "location": {"name": "London", "lat": 51.52, "lon": -0.11, "country": "United Kingdom"},
            "current": {
                "last_updated_epoch": NOON_EPOCH,
                "temp_c": 17.0,
                "feelslike_c": 16.0,
                "humidity": 72,
                "pressure_mb": 1012.0,
                "wind_kph": 36.0,
                "wind_degree": 10,
                "condition": {"text": "Light rain", "code": 1183},
                "cloud": 75,
                "vis_km": 10.0,
            },
        },
    )
    provider = WeatherAPIProvider(api_key="test", base_url=WEATHERAPI_URL)

    observation = provider.fetch_by_name("London", lang="de")

    assert observation.provider == "weatherapi"
    assert observation.location_name == "London"
    assert observation.wind_speed_ms == pytest.approx(10.0)
    assert observation.wind_direction_deg == 10.0
    assert observation.condition == "Rain"
    assert observation.description == "light rain"
    assert observation.visibility_m == 10000.0
    assert observation.observed_at == NOON
    assert requests_mock.last_request.qs["q"] == ["london"]
    assert requests_mock.last_request.qs["lang"] == ["de"]


def test_weatherapi_unknown_location(requests_mock):
    requests_mock.get(f"{WEATHERAPI_URL}/current.json", status_code=400, json={"error": {"code": 1006}})
    provider = WeatherAPIProvider(api_key="test", base_url=WEATHERAPI_URL)

    with pytest.raises(LocationNotFound):
        provider.fetch_by_name("Nowhere")


def test_weatherapi_hourly_forecast(requests_mock):
    requests_mock.get(
        f"{WEATHERAPI_URL}/forecast.json",
        json={
            "forecast": {
                "forecastday": [
                    {
                        "day": {"maxtemp_c": 22.0, "mintemp_c": 12.0},
                        "hour": [
                            {
                                "time_epoch": NOON_EPOCH,
                                "temp_c": 20.0,
                                "condition": {"text": "Sunny", "code": 1000},
                                "humidity": 40,
                                "wind_kph": 7.2,
                                "precip_mm": 0.0,
                            },
                            {
                                "time_epoch": NOON_EPOCH + 3600,
                                "temp_c": 21.0,
                                "condition": {"text": "Patchy rain", "code": 1063},
                            },
                        ],
                    }
                ]
            }
        },
    )
    provider = WeatherAPIProvider(api_key="test", base_url=WEATHERAPI_URL)

    forecast = provider.fetch_forecast(51.52, -0.11)

    assert [point.condition for point in forecast] == ["Clear", "Rain"]
    assert forecast[0].wind_speed_ms == pytest.approx(2.0)
    assert forecast[1].wind_speed_ms is None
    assert forecast[1].temp_max_c == 22.0


def test_weatherapi_language_mapping():
    assert map_language("fr") == "fr"
    assert map_language("ja") == "en"
    assert condition_group(1087) == "Thunderstorm"
    assert condition_group(9999) == "Unknown"


# OpenWeatherMap -----------------------------------------------------------
def test_openweathermap_current_normalization(requests_mock):
    requests_mock.get(
        OWM_URL,
        json={
            "coord": {"lat": 40.42, "lon": -3.7},
            "weather": [{"id": 800, "main": "Clear", "description": "clear sky"}],
            "main": {
                "temp": 28.0,
                "feels_like": 27.5,
                "humidity": 30,
                "pressure": 1018,
                "temp_min": 25.0,
                "temp_max": 31.0,
            },
            "wind": {"speed": 4.1, "deg": 90},
            "dt": NOON_EPOCH,
            "name": "Madrid",
            "visibility": 10000,
            "clouds": {"all": 0},
            "sys": {"country": "ES"},
        },
    )
    provider = OpenWeatherMapProvider(api_key="test", base_url=OWM_URL)

    observation = provider.fetch_by_coordinates(40.42, -3.7)

    assert observation.condition == "Clear"
    assert observation.wind_speed_ms == 4.1
    assert observation.temp_max_c == 31.0
    assert observation.country == "ES"
    assert requests_mock.last_request.qs["units"] == ["metric"]
    assert not provider.supports_forecast


def test_openweathermap_empty_conditions_are_malformed(requests_mock):
    requests_mock.get(
        OWM_URL,
        json={
            "coord": {"lat": 40.42, "lon": -3.7},
            "weather": [],
            "main": {"temp": 28.0, "feels_like": 27.5, "humidity": 30, "pressure": 1018},
            "wind": {"speed": 4.1, "deg": 90},
            "dt": NOON_EPOCH,
        },
    )
    provider = OpenWeatherMapProvider(api_key="test", base_url=OWM_URL)

    with pytest.raises(MalformedPayload):
        provider.fetch_by_coordinates(40.42, -3.7)


@pytest.mark.parametrize(
    "condition_id, group",
    [(211, "Thunderstorm"), (301, "Drizzle"), (502, "Rain"), (601, "Snow"), (741, "Fog"), (804, "Clouds")],
)
def test_owm_groups(condition_id, group):
    assert owm_group(condition_id) == group


# Météo-France -------------------------------------------------------------
METEOFRANCE_OBSERVATION = {
    "observations": [
        {
            "date": "2024-06-01T12:00:00Z",
            "temperature": 18.2,
            "humidity": 70,
            "pressure": 1015,
            "wind_speed": 18.0,
            "wind_direction": 270,
            "description": "ciel dégagé",
            "weather_main": "Clear",
        }
    ]
}


def test_meteofrance_observation(requests_mock):
    requests_mock.get(
        f"{METEOFRANCE_URL}/DPObs/v1/observations/spatio-temporelles/horaires",
        json=METEOFRANCE_OBSERVATION,
    )
    provider = MeteoFranceProvider(api_key="secret", base_url=METEOFRANCE_URL)

    observation = provider.fetch_by_name("Lyon")

    assert observation.provider == "meteofrance"
    assert observation.location_name == "Lyon"
    assert observation.latitude == 45.7640
    assert observation.feels_like_c is None
    assert observation.wind_speed_ms == pytest.approx(5.0)
    assert observation.condition == "Clear"
    assert observation.country == "FR"
    assert observation.observed_at == NOON
    assert requests_mock.last_request.headers["apikey"] == "secret"


def test_meteofrance_observation_requires_a_description(requests_mock):
    station = {key: value for key, value in METEOFRANCE_OBSERVATION["observations"][0].items() if key != "description"}
    requests_mock.get(
        f"{METEOFRANCE_URL}/DPObs/v1/observations/spatio-temporelles/horaires",
        json={"observations": [station]},
    )
    provider = MeteoFranceProvider(api_key="secret", base_url=METEOFRANCE_URL)

    with pytest.raises(MalformedPayload):
        provider.fetch_by_name("Lyon")


def test_meteofrance_rejects_locations_outside_france(requests_mock):
    provider = MeteoFranceProvider(api_key="secret", base_url=METEOFRANCE_URL)

    with pytest.raises(LocationNotFound):
        provider.fetch_by_coordinates(52.52, 13.405)

    assert requests_mock.call_count == 0


def test_meteofrance_unknown_city():
    provider = MeteoFranceProvider(api_key="secret", base_url=METEOFRANCE_URL)

    with pytest.raises(LocationNotFound):
        provider.fetch_by_name("Springfield")


def test_meteofrance_alerts_skip_green_level():
    provider = MeteoFranceProvider(api_key="secret", base_url=METEOFRANCE_URL)

    with responses.RequestsMock() as rsps:
        rsps.add(
            "GET",
            f"{METEOFRANCE_URL}/DPVigilance/v1/vigilance/metropole",
            json={
                "vigilances": [
                    {"niveau": 1, "type": "vent", "message": "RAS"},
                    {"niveau": 2, "type": "orages", "message": "Orages isolés", "debut": "2024-06-01T14:00"},
                    {"niveau": 3, "type": "pluie-inondation", "message": "Fortes pluies"},
                ]
            },
            status=200,
        )

        alerts = provider.get_alerts()

    assert [alert.level_name for alert in alerts] == ["yellow", "orange"]
    assert alerts[0].type == "orages"
    assert alerts[0].start == "2024-06-01T14:00"
    assert alerts[1].end is None


def test_meteofrance_alerts_propagate_quota_errors():
    provider = MeteoFranceProvider(api_key="secret", base_url=METEOFRANCE_URL)

    with responses.RequestsMock() as rsps:
        rsps.add("GET", f"{METEOFRANCE_URL}/DPVigilance/v1/vigilance/metropole", status=429, body="slow down")

        with pytest.raises(QuotaExceeded):
            provider.get_alerts()
