from unittest.mock import Mock

import pytest

from conftest import FakeGeoClient, make_initiative, make_node
from lamap.initiative_engine.dedupe import ProximityDeduplicator
from lamap.initiative_engine.errors import StorageUnavailable
from lamap.initiative_engine.ingest_flow import run_ingest
from lamap.initiative_engine.models import BoundingBox, GeoPoint

PARIS = BoundingBox(2.30, 48.85, 2.40, 48.90)


def test_found_neighbour_is_duplicate():
    store = Mock()
    store.find_near.return_value = 1
    assert ProximityDeduplicator(store).is_duplicate(GeoPoint(2.35, 48.87)) is True
    store.find_near.assert_called_once_with(GeoPoint(2.35, 48.87), 50.0)


def test_no_neighbour_is_not_duplicate():
    store = Mock()
    store.find_near.return_value = 0
    assert ProximityDeduplicator(store).is_duplicate(GeoPoint(2.35, 48.87)) is False


def test_radius_override_per_call():
    store = Mock()
    store.find_near.return_value = 0
    ProximityDeduplicator(store, 50).is_duplicate(GeoPoint(2.35, 48.87), radius_m=200)
    store.find_near.assert_called_once_with(GeoPoint(2.35, 48.87), 200.0)


def test_storage_failure_propagates():
    store = Mock()
    store.find_near.side_effect = StorageUnavailable("down")
    with pytest.raises(StorageUnavailable):
        ProximityDeduplicator(store).is_duplicate(GeoPoint(2.35, 48.87))


def test_radius_is_in_meters(store):
    store.insert(make_initiative(lon=2.3500, lat=48.8700))
    dedupe = ProximityDeduplicator(store, 50)
    # ~37 m east at this latitude
    assert dedupe.is_duplicate(GeoPoint(2.3505, 48.8700))
    # ~110 m north
    assert not dedupe.is_duplicate(GeoPoint(2.3500, 48.8710))


def test_second_run_inserts_nothing_new(store, settings):
    nodes = [
        make_node(1, lat=48.86, lon=2.31, name="Emmaüs Boutique"),
        make_node(2, lat=48.87, lon=2.33, name="La Petite Rockette"),
        make_node(3, lat=48.89, lon=2.38, name="Ressourcerie Créative"),
    ]
    geo = FakeGeoClient({"second_hand": nodes})

    first = run_ingest(["second_hand"], PARIS, settings=settings, store=store, geo_client=geo, skip_duplicates=True)
    second = run_ingest(["second_hand"], PARIS, settings=settings, store=store, geo_client=geo, skip_duplicates=True)

    assert first.total("inserted") == 3
    assert second.total("inserted") == 0
    assert second.total("skipped_duplicate") == 3
    assert len(store.rows) == 3
