from unittest.mock import MagicMock

import requests

from pharmacy_harvester.models import BoundingBox, ProviderQuery, ProviderType
from pharmacy_harvester.providers import OverpassProvider
from pharmacy_harvester.providers.overpass import build_pharmacy_query


ELEMENTS = {"elements": [
    {"type": "node", "id": 101, "lat": 42.44, "lon": 19.26, "tags": {
        "amenity": "pharmacy",
        "name": "Apoteka Sloboda",
        "name:en": "Sloboda Pharmacy",
        "addr:street": "Njegoševa",
        "addr:housenumber": "5",
        "addr:city": "Podgorica",
        "contact:phone": "+382 20 111 222",
        "opening_hours": "Mo-Su 00:00-24:00",
    }},
    {"type": "way", "id": 202, "center": {"lat": 42.45, "lon": 19.27}, "tags": {"name": "Apoteka Way"}},
    {"type": "relation", "id": 303, "tags": {"name": "No geometry"}},
]}


def _response(payload, status=200):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return response


def _session(responder):
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = responder
    return session


def test_pharmacy_query_covers_country_area_and_tags():
    query = build_pharmacy_query("ME")
    assert 'area["ISO3166-1"="ME"][admin_level=2]->.a;' in query
    assert 'relation["amenity"="pharmacy"](area.a);' in query
    assert 'node["healthcare"="pharmacy"](area.a);' in query
    assert 'way["shop"="chemist"](area.a);' in query
    assert 'relation["shop"="chemist"]' not in query
    assert query.endswith("out tags center;")


def test_country_scan_maps_nodes_and_way_centers(config):
    session = _session(lambda method, url, **kwargs: _response(ELEMENTS))
    candidates = OverpassProvider(config, session=session).fetch(ProviderQuery.country())

    assert [c.name for c in candidates] == ["Apoteka Sloboda", "Apoteka Way"]
    node = candidates[0]
    assert node.source_type == ProviderType.OSM
    assert node.name_en == "Sloboda Pharmacy"
    assert node.address == "Njegoševa 5"
    assert node.city_name == "Podgorica"
    assert node.phone == "+382 20 111 222"
    assert node.hours.is_24h is True
    assert node.osm_key == "node:101"
    assert node.reliability_score == 95
    assert (candidates[1].lat, candidates[1].lng) == (42.45, 19.27)

    method, url = session.request.call_args.args
    assert method == "POST"
    assert url == config.overpass_mirrors[0]
    assert "ISO3166-1" in session.request.call_args.kwargs["data"]["data"]
    assert session.request.call_args.kwargs["timeout"] == config.overpass_timeout


def test_falls_back_to_next_mirror(config):
    urls = []

    def responder(method, url, **kwargs):
        urls.append(url)
        if url == config.overpass_mirrors[0]:
            raise requests.ConnectionError("mirror down")
        return _response(ELEMENTS)

    candidates = OverpassProvider(config, session=_session(responder)).fetch(ProviderQuery.country())
    assert len(candidates) == 2
    assert urls == list(config.overpass_mirrors[:2])


def test_all_mirrors_failing_degrades_to_empty(config, offline_session):
    provider = OverpassProvider(config, session=offline_session)
    assert provider.fetch(ProviderQuery.country()) == []
    expected_calls = len(config.overpass_mirrors) * (config.retries + 1)
    assert offline_session.request.call_count == expected_calls


def test_http_error_status_counts_as_mirror_failure(config):
    session = _session(lambda method, url, **kwargs: _response({}, status=504))
    assert OverpassProvider(config, session=session).fetch(ProviderQuery.country()) == []


def test_malformed_payload_degrades_to_empty(config):
    session = _session(lambda method, url, **kwargs: _response(["not", "an", "object"]))
    assert OverpassProvider(config, session=session).fetch(ProviderQuery.country()) == []


def test_only_country_queries_are_supported(config, offline_session):
    provider = OverpassProvider(config, session=offline_session)
    assert provider.fetch(ProviderQuery.nearby(42.43, 19.26, 2000)) == []
    offline_session.request.assert_not_called()


def test_country_bbox_from_relation_bounds(config):
    payload = {"elements": [{"bounds": {"minlat": 41.8, "minlon": 18.4, "maxlat": 43.6, "maxlon": 20.4}}]}
    session = _session(lambda method, url, **kwargs: _response(payload))
    assert OverpassProvider(config, session=session).fetch_country_bbox() == BoundingBox(41.8, 18.4, 43.6, 20.4)


def test_country_bbox_falls_back_to_configured_box(config, offline_session):
    assert OverpassProvider(config, session=offline_session).fetch_country_bbox() == config.country_bbox

    empty = _session(lambda method, url, **kwargs: _response({"elements": []}))
    assert OverpassProvider(config, session=empty).fetch_country_bbox() == config.country_bbox
