"""
Shared pytest fixtures for the traffic-source test suite.

Provides reusable fixtures for:
- Traffic Source CSV exports (EN, RU, unmapped headers)
- Snapshot timelines
- In-memory byte sources
- Loader / orchestrator instances with isolated caches
"""

import pytest

from analytics.errors import SnapshotFetchError, SnapshotNotFoundError
from analytics.loader import SnapshotLoader
from analytics.view import TrafficViewOrchestrator
from memory.snapshot_cache import SnapshotCache
from registry.schemas import Snapshot


# =============================================================================
# Byte Source Fakes
# =============================================================================

class FakeByteSource:
    """In-memory byte source that records every fetch."""

    def __init__(self, objects=None, failures=None):
        self.objects = dict(objects or {})
        self.failures = dict(failures or {})
        self.fetch_calls = []

    async def fetch(self, storage_path):
        self.fetch_calls.append(storage_path)
        if storage_path in self.failures:
            raise self.failures[storage_path]
        if storage_path not in self.objects:
            raise SnapshotNotFoundError(storage_path)
        return self.objects[storage_path]


# =============================================================================
# CSV Fixtures
# =============================================================================

@pytest.fixture
def scenario_csv():
    """Short export with a Total row and a single source."""
    return (
        "Source,Views,Watch time,Avg duration,Impressions,CTR\n"
        "Total,1000,50.5,0:11:35,5000,20.0\n"
        "Suggested videos,600,30.2,0:12:00,2500,24.0\n"
    )


@pytest.fixture
def english_csv():
    """Full-length English export, column order as the console exports it."""
    return (
        "Traffic source,Views,Watch time (hours),Average view duration,"
        "Impressions,Impressions click-through rate (%)\n"
        "Total,\"12,480\",610.4,0:02:56,\"148,220\",6.1\n"
        "Suggested videos,\"7,210\",402.7,0:03:21,\"96,410\",5.8\n"
        "Browse features,\"3,105\",141.2,0:02:44,\"40,115\",6.9\n"
        "YouTube search,1402,50.9,0:02:11,\"11,695\",7.2\n"
        "External,763,15.6,0:01:14,0,0\n"
    )


@pytest.fixture
def russian_csv():
    """Russian-locale export with shuffled column order."""
    return (
        "Источник трафика,Показы,Показатель кликабельности показов,"
        "Просмотры,Средняя длительность просмотра,Время просмотра\n"
        "Итого,20000,5.5,1100,0:02:30,45.8\n"
        "Похожие видео,15000,6.0,900,0:02:41,40.3\n"
        "Поиск на YouTube,5000,4.0,200,0:01:39,5.5\n"
    )


@pytest.fixture
def unmapped_csv():
    """Export whose headers match no known alias."""
    return (
        "Col A,Col B,Col C,Col D,Col E,Col F\n"
        "Total,1000,50.5,0:11:35,5000,20.0\n"
        "Suggested videos,600,30.2,0:12:00,2500,24.0\n"
    )


# =============================================================================
# Snapshot Fixtures
# =============================================================================

PREVIOUS_CSV = (
    "Traffic source,Views,Watch time (hours),Average view duration,Impressions,"
    "Impressions click-through rate\n"
    "Total,500,20.0,0:02:24,4000,10.0\n"
    "Suggested videos,300,12.5,0:02:30,2000,12.0\n"
    "Browse features,200,7.5,0:02:15,2000,8.0\n"
)

CURRENT_CSV = (
    "Traffic source,Views,Watch time (hours),Average view duration,Impressions,"
    "Impressions click-through rate\n"
    "Total,900,36.0,0:02:24,7000,12.5\n"
    "Suggested videos,600,25.0,0:02:30,4000,15.0\n"
    "Browse features,200,7.5,0:02:15,2000,8.0\n"
    "Notifications,100,3.5,0:02:06,1000,10.0\n"
)


@pytest.fixture
def timeline():
    """Three snapshots of one video, deliberately out of order."""
    return [
        Snapshot(id="ts_3", timestamp=3000, storage_path="videos/v1/ts_3.csv"),
        Snapshot(id="ts_1", timestamp=1000, storage_path="videos/v1/ts_1.csv"),
        Snapshot(id="ts_2", timestamp=2000, storage_path="videos/v1/ts_2.csv"),
    ]


@pytest.fixture
def byte_source():
    """Byte source holding the timeline's CSVs."""
    return FakeByteSource({
        "videos/v1/ts_1.csv": PREVIOUS_CSV.encode("utf-8"),
        "videos/v1/ts_2.csv": CURRENT_CSV.encode("utf-8"),
        "videos/v1/ts_3.csv": CURRENT_CSV.encode("utf-8"),
    })


@pytest.fixture
def failing_byte_source():
    """Byte source whose oldest snapshot fails with a transport error."""
    return FakeByteSource(
        {
            "videos/v1/ts_2.csv": CURRENT_CSV.encode("utf-8"),
            "videos/v1/ts_3.csv": CURRENT_CSV.encode("utf-8"),
        },
        failures={
            "videos/v1/ts_1.csv": SnapshotFetchError("videos/v1/ts_1.csv", "permission denied"),
        },
    )


@pytest.fixture
def make_byte_source():
    """Factory for byte sources with custom objects and failures."""
    return FakeByteSource


@pytest.fixture
def loader(byte_source):
    """Loader with an isolated 20-entry cache."""
    return SnapshotLoader(byte_source, cache=SnapshotCache(max_entries=20))


@pytest.fixture
def orchestrator(loader):
    """View orchestrator over the fake byte source."""
    return TrafficViewOrchestrator(loader)
