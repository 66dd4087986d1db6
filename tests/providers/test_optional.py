from unittest.mock import MagicMock

import pytest
import requests

from pharmacy_harvester.models import ProviderQuery, ProviderType
from pharmacy_harvester.providers import FoursquareProvider, HereProvider, TomTomProvider


NEARBY = ProviderQuery.nearby(42.43, 19.26, 2000, keyword="pharmacy")


def _response(payload, status=200):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return response


def _session(payload):
    session = MagicMock(spec=requests.Session)
    session.request.return_value = _response(payload)
    return session


def test_foursquare_maps_results(config):
    session = _session({"results": [{
        "name": "Apoteka FSQ",
        "location": {"formatted_address": "Ulica Slobode 1, Podgorica"},
        "geocodes": {"main": {"latitude": 42.44, "longitude": 19.26}},
        "website": "https://fsq.example",
    }]})
    provider = FoursquareProvider(config.with_overrides(foursquare_api_key="fsq-key"), session=session)

    [candidate] = provider.fetch(NEARBY)

    assert candidate.source_type == ProviderType.FSQ
    assert (candidate.lat, candidate.lng) == (42.44, 19.26)
    assert candidate.website == "https://fsq.example"
    kwargs = session.request.call_args.kwargs
    assert kwargs["headers"] == {"Authorization": "fsq-key"}
    assert kwargs["params"]["categories"] == "13032"
    assert kwargs["params"]["ll"] == "42.43,19.26"
    assert kwargs["params"]["query"] == "pharmacy"


def test_here_maps_contacts(config):
    session = _session({"items": [{
        "title": "Apoteka HERE",
        "address": {"label": "Bulevar Ivana Crnojevića 10, Podgorica"},
        "position": {"lat": 42.44, "lng": 19.25},
        "contacts": [{"phone": [{"value": "+382 20 123 456"}, {"value": "+382 67 111 222"}],
                      "www": [{"value": "https://here.example"}]}],
    }]})
    provider = HereProvider(config.with_overrides(here_api_key="here-key"), session=session)

    [candidate] = provider.fetch(NEARBY)

    assert candidate.source_type == ProviderType.HERE
    assert candidate.phone == "+382 20 123 456, +382 67 111 222"
    assert candidate.website == "https://here.example"
    assert session.request.call_args.kwargs["params"]["apiKey"] == "here-key"


def test_tomtom_maps_poi_and_ignores_free_text(config):
    session = _session({"results": [{
        "poi": {"name": "Apoteka TomTom", "phone": "+382 20 999 888", "url": "tomtom.example"},
        "address": {"freeformAddress": "Hercegovačka 5, Podgorica"},
        "position": {"lat": 42.44, "lon": 19.26},
    }]})
    provider = TomTomProvider(config.with_overrides(tomtom_api_key="tt-key"), session=session)

    assert provider.fetch(ProviderQuery.free_text("apoteka", lat=42.43, lng=19.26)) == []
    session.request.assert_not_called()

    [candidate] = provider.fetch(NEARBY)
    assert candidate.source_type == ProviderType.TOMTOM
    assert candidate.lng == 19.26
    assert session.request.call_args.kwargs["params"]["categorySet"] == "9554"


@pytest.mark.parametrize("provider_cls", [FoursquareProvider, HereProvider, TomTomProvider])
def test_provider_without_credential_is_disabled(config, offline_session, provider_cls):
    provider = provider_cls(config, session=offline_session)
    assert provider.enabled is False
    assert provider.fetch(NEARBY) == []
    offline_session.request.assert_not_called()


def test_queries_without_center_are_skipped(config, offline_session):
    provider = HereProvider(config.with_overrides(here_api_key="here-key"), session=offline_session)
    assert provider.fetch(ProviderQuery.free_text("apoteka Bar")) == []
    offline_session.request.assert_not_called()


def test_non_json_body_degrades_to_empty(config):
    session = MagicMock(spec=requests.Session)
    response = _response(None)
    response.json.side_effect = ValueError("not json")
    session.request.return_value = response
    provider = FoursquareProvider(config.with_overrides(foursquare_api_key="fsq-key"), session=session)
    assert provider.fetch(NEARBY) == []
