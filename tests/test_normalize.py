import pytest

from conftest import make_node
from lamap.initiative_engine.models import Category, Initiative, Skip
from lamap.initiative_engine.normalize import (
    SKIP_INVALID_COORDINATES,
    SKIP_MISSING_COORDINATES,
    SKIP_MISSING_NAME,
    NodeNormalizer,
    build_address,
)


def test_full_node_maps_every_known_tag():
    node = make_node(
        101,
        lat=48.8566,
        lon=2.3522,
        name="  Ressourcerie du Canal ",
        description="Objets de seconde main",
        contact_website="https://ressourcerie.example",
        phone="+33 1 23 45 67 89",
        email="bonjour@ressourcerie.example",
        opening_hours="Mo-Fr 09:00-18:00",
        addr_housenumber="12",
        addr_street="Rue de la Paix",
        addr_postcode="75002",
        addr_city="Paris",
        shop="second_hand",
    )

    result = NodeNormalizer().normalize(node, Category.SECOND_HAND_SHOP)

    assert isinstance(result, Initiative)
    assert result.name == "Ressourcerie du Canal"
    assert result.category is Category.SECOND_HAND_SHOP
    assert result.description == "Objets de seconde main"
    assert result.website == "https://ressourcerie.example"
    assert result.phone == "+33 1 23 45 67 89"
    assert result.email == "bonjour@ressourcerie.example"
    assert result.address == "12 Rue de la Paix 75002 Paris"
    assert result.opening_hours == {"raw": "Mo-Fr 09:00-18:00"}
    assert result.location.longitude == 2.3522
    assert result.location.latitude == 48.8566
    assert result.verified is False
    assert result.id is None
    assert result.source_ref == "node/101"


def test_website_prefers_plain_tag_over_fallbacks():
    node = make_node(1, name="X", website="https://a.example", contact_website="https://b.example", url="https://c.example")
    assert NodeNormalizer().normalize(node, Category.OTHER).website == "https://a.example"


def test_blank_values_are_treated_as_absent():
    node = make_node(1, name="X", phone="   ", email="", opening_hours=" ")
    result = NodeNormalizer().normalize(node, Category.OTHER)
    assert result.phone is None
    assert result.email is None
    assert result.opening_hours is None


@pytest.mark.parametrize(
    "tags,expected",
    [
        ({"addr:housenumber": "12", "addr:street": "Rue de la Paix", "addr:postcode": "75002", "addr:city": "Paris"}, "12 Rue de la Paix 75002 Paris"),
        ({"addr:street": "Rue Oberkampf", "addr:city": "Paris"}, "Rue Oberkampf Paris"),
        ({"addr:city": "Lyon", "addr:housenumber": "3"}, "3 Lyon"),
        ({"addr:street": "  ", "addr:city": "Lille"}, "Lille"),
        ({}, None),
        ({"addr:country": "FR"}, None),
    ],
)
def test_build_address(tags, expected):
    assert build_address(tags) == expected


def test_nameless_node_is_skipped_by_default():
    node = make_node(42, shop="second_hand")
    assert NodeNormalizer().normalize(node, Category.SECOND_HAND_SHOP) == Skip(SKIP_MISSING_NAME)


def test_blank_name_counts_as_nameless():
    node = make_node(42, name="   ")
    assert NodeNormalizer().normalize(node, Category.OTHER) == Skip(SKIP_MISSING_NAME)


def test_nameless_node_synthesized_when_configured():
    node = make_node(42, shop="second_hand")
    result = NodeNormalizer("synthesize").normalize(node, Category.SECOND_HAND_SHOP)
    assert isinstance(result, Initiative)
    assert result.name == "SecondHandShop #42"


def test_unknown_nameless_policy_rejected():
    with pytest.raises(ValueError):
        NodeNormalizer("guess")


def test_missing_coordinates_skipped():
    node = make_node(7, lat=None, lon=None, name="Sans position")
    assert NodeNormalizer().normalize(node, Category.OTHER) == Skip(SKIP_MISSING_COORDINATES)


@pytest.mark.parametrize("lat,lon", [(95.0, 2.0), (48.0, 181.0), (float("nan"), 2.0)])
def test_out_of_range_coordinates_skipped(lat, lon):
    node = make_node(7, lat=lat, lon=lon, name="Hors carte")
    assert NodeNormalizer().normalize(node, Category.OTHER) == Skip(SKIP_INVALID_COORDINATES)


def test_every_named_node_with_valid_coordinates_normalizes():
    nodes = [
        make_node(1, name="A"),
        make_node(2, lat=-90.0, lon=-180.0, name="B", foo="bar"),
        make_node(3, lat=90.0, lon=180.0, name="C", opening_hours="24/7"),
        make_node(4, lat=0.0, lon=0.0, name="D", website="example.org", unknown_tag="ignored"),
    ]
    normalizer = NodeNormalizer()
    for node in nodes:
        assert isinstance(normalizer.normalize(node, Category.RECYCLING_POINT), Initiative)


def test_social_tags_become_links():
    node = make_node(5, name="Repair Café", contact_facebook="repaircafe.paris", instagram="@repaircafe")
    result = NodeNormalizer().normalize(node, Category.REPAIR_CAFE)
    assert result.social_links == {
        "facebook": "https://www.facebook.com/repaircafe.paris",
        "instagram": "https://www.instagram.com/repaircafe",
    }


def test_source_node_is_not_modified():
    node = make_node(9, name="Épicerie bio", opening_hours="Mo 10:00-12:00")
    before = dict(node.tags)
    NodeNormalizer().normalize(node, Category.ORGANIC_SHOP)
    assert dict(node.tags) == before
    with pytest.raises(TypeError):
        node.tags["name"] = "changed"


def test_normalize_is_deterministic():
    node = make_node(11, name="Friperie", addr_city="Nantes")
    n = NodeNormalizer()
    assert n.normalize(node, Category.THRIFT_STORE) == n.normalize(node, Category.THRIFT_STORE)
