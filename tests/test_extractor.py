"""Tests for vehicle and spare-part extraction."""

import pytest

from autocrawl.extractor import DataExtractor

URL = "https://a.test/autos/1"

PART_CARD_HTML = """
<html><body>
  <div class="product-card">
    <h3>Balata delantera</h3>
    <p>Pastilla de freno cerámica</p>
    <span>SKU: BR-1234</span>
    <span>Compatible con: Nissan Sentra 2018</span>
  </div>
  <div class="product">Camiseta roja</div>
</body></html>
"""


@pytest.fixture
def extractor():
    return DataExtractor()


class TestExtractVehicles:
    """Year and brand pairing in page text."""

    def test_single_vehicle(self, extractor):
        html = "<html><body><h1>Toyota Corolla 2020</h1><p>Seminuevo en excelente estado</p></body></html>"
        vehicles = extractor.extract_vehicles(html, URL)

        assert len(vehicles) == 1
        vehicle = vehicles[0]
        assert vehicle.brand == "Toyota"
        assert vehicle.model == "Corolla"
        assert vehicle.year == 2020
        assert vehicle.condition == "seminuevo"
        assert vehicle.description == "Seminuevo en excelente estado"

    @pytest.mark.parametrize("wording,expected", [
        ("Seminuevo, un dueño", "seminuevo"),
        ("Nuevo de agencia", "nuevo"),
        ("Usado, buen estado", "usado"),
        ("Precio a tratar", None),
    ])
    def test_condition(self, extractor, wording, expected):
        html = f"<html><body><h1>Toyota Corolla 2020</h1><p>{wording}</p></body></html>"
        vehicles = extractor.extract_vehicles(html, URL)
        assert vehicles[0].condition == expected

    def test_distant_vehicles_are_separate(self, extractor):
        filler = "x " * 150
        html = f"<html><body><p>Toyota Corolla 2020 {filler} Ford 2015 usado</p></body></html>"
        vehicles = extractor.extract_vehicles(html, URL)

        keys = {(v.brand, v.year) for v in vehicles}
        assert ("Toyota", 2020) in keys
        assert ("Ford", 2015) in keys

    def test_duplicates_collapse(self, extractor):
        html = "<html><body><h1>Honda Civic 2019</h1><h2>Honda Civic 2019</h2></body></html>"
        vehicles = extractor.extract_vehicles(html, URL)
        assert len(vehicles) == 1
        assert vehicles[0].model == "Civic"

    def test_no_vehicle_content(self, extractor):
        assert extractor.extract_vehicles("<html><body><p>Bienvenido</p></body></html>", URL) == []

    def test_empty_html(self, extractor):
        assert extractor.extract_vehicles("", URL) == []


class TestExtractParts:
    """Product cards with part vocabulary."""

    def test_part_card(self, extractor):
        parts = extractor.extract_parts(PART_CARD_HTML, URL)

        assert len(parts) == 1
        part = parts[0]
        assert part.part_name == "Balata delantera"
        assert part.part_number == "BR-1234"
        assert part.brand == "Nissan"
        assert part.compatible_vehicle == "Nissan Sentra 2018"
        assert part.description == "Pastilla de freno cerámica"

    def test_cards_without_part_vocabulary_ignored(self, extractor):
        html = '<html><body><div class="product">Camiseta roja</div></body></html>'
        assert extractor.extract_parts(html, URL) == []


class TestExtractLinks:
    """Anchors parsed from HTML."""

    def test_links(self, extractor):
        html = '<html><body><a href="/autos/1"> Sedán </a><a>sin destino</a></body></html>'
        assert extractor.extract_links(html, URL) == [{"href": "/autos/1", "text": "Sedán"}]
