import sys
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import MagicMock

import pytest
import requests

# Ensure project 'src' dir is on PYTHONPATH for local test execution
root_dir = Path(__file__).resolve().parents[1]
src_path = root_dir / "src"
if src_path.exists() and str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from pharmacy_harvester.config import HarvestConfig  # noqa: E402
from pharmacy_harvester.models import Candidate, ProviderQuery, ProviderType, QueryKind  # noqa: E402
from pharmacy_harvester.normalization import normalize_candidate  # noqa: E402
from pharmacy_harvester.providers.base import ProviderAdapter  # noqa: E402
from pharmacy_harvester.reconciliation import SQLitePharmacyStore  # noqa: E402


@pytest.fixture
def config():
    """Credential-free config with every sleep and backoff set to zero."""
    return HarvestConfig(
        retry_backoff=0.0,
        page_delay=0.0,
        quota_backoff=0.0,
        detail_delay=0.0,
        geocode_delay=0.0,
        run_deadline=120.0,
        concurrency=2,
    )


@pytest.fixture
def store(tmp_path):
    s = SQLitePharmacyStore(str(tmp_path / "pharmacies.db"))
    yield s
    s.close()


@pytest.fixture
def offline_session():
    """A requests.Session stand-in whose every call fails with a connection error."""
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = requests.ConnectionError("network disabled in tests")
    session.get.side_effect = requests.ConnectionError("network disabled in tests")
    return session


def make_candidate(name: str = "Apoteka Centar", *, lat: Optional[float] = 42.4304,
                   lng: Optional[float] = 19.2594, source_type: ProviderType = ProviderType.GOOGLE,
                   **fields) -> Candidate:
    return normalize_candidate(source_type, name=name, lat=lat, lng=lng,
                               address=fields.pop("address", "Bulevar Svetog Petra 12"), **fields)


class FakeProvider(ProviderAdapter):
    """Adapter answering from a callable and recording every query it receives."""

    supported_kinds = (QueryKind.NEARBY, QueryKind.TEXT, QueryKind.COUNTRY)

    def __init__(self, config, responder: Callable[[ProviderQuery], List[Candidate]] = None,
                 name: str = "fake", enabled: bool = True):
        super().__init__(config, session=MagicMock())
        self.name = name
        self._responder = responder or (lambda query: [])
        self._enabled = enabled
        self.queries: List[ProviderQuery] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _fetch(self, query):
        self.queries.append(query)
        return list(self._responder(query))

    def fetch_country_bbox(self):
        return self.config.country_bbox


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def fake_provider():
    return FakeProvider
