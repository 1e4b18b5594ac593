"""Tests for the relevance gate and link filtering."""

import pytest

from autocrawl.models import ContentType
from autocrawl.relevance import RelevanceDetector

BASE_URL = "https://a.test/autos"


@pytest.fixture
def detector():
    return RelevanceDetector()


class TestScore:
    """Keyword scoring and content type."""

    def test_vehicle_page(self, detector):
        text = "Venta de autos: Toyota Corolla 2020 seminuevo. Honda Civic 2019 usado."
        result = detector.score(text, "https://a.test/listado")

        assert result.content_type == ContentType.VEHICLE
        assert result.vehicle_score == 11
        assert result.score == 16.5
        assert result.wants_vehicles and not result.wants_parts

    def test_parts_page(self, detector):
        text = "Refacción: pastilla de freno, disco de freno y filtro de aceite"
        result = detector.score(text, "https://a.test/catalogo")

        assert result.content_type == ContentType.PART
        assert result.parts_score == 7
        assert result.score == 8.4
        assert result.wants_parts and not result.wants_vehicles

    def test_irrelevant_page(self, detector):
        result = detector.score("Hello world", "https://a.test/")
        assert result.score == 0
        assert result.content_type == ContentType.UNKNOWN

    def test_vehicle_url_hint_adds_five(self, detector):
        plain = detector.score("hola", "https://a.test/inicio")
        hinted = detector.score("hola", "https://a.test/autos")
        assert hinted.score - plain.score == 5

    def test_parts_url_hint_counts_as_parts(self, detector):
        result = detector.score("", "https://a.test/refacciones")
        assert result.parts_score == 3
        assert result.content_type == ContentType.PART

    def test_prices_and_title_count(self, detector):
        result = detector.score("$ 250,000 o 300000 pesos", "https://a.test/x", title="Oferta")
        assert result.score == 2

    def test_mixed_content(self, detector):
        text = "auto freno $100 $200 $300"
        result = detector.score(text, "https://a.test/x")
        assert result.content_type == ContentType.MIXED
        assert result.wants_vehicles and result.wants_parts

    def test_score_rounded_to_one_decimal(self, detector):
        result = detector.score("freno", "https://a.test/x")
        assert result.score == 1.2


class TestPromisingUrls:
    """URL hints that make a link worth following."""

    @pytest.mark.parametrize("url,expected", [
        ("https://a.test/autos/sedan", True),
        ("https://a.test/refacciones/frenos", True),
        ("https://a.test/modelo/2020", True),
        ("https://a.test/CARS", True),
        ("https://a.test/about", False),
        ("https://a.test/blog/noticias", False),
    ])
    def test_is_promising_url(self, detector, url, expected):
        assert detector.is_promising_url(url) is expected


class TestFilterPromisingLinks:
    """Cleaning harvested anchors."""

    def test_sixty_links_capped_at_fifty(self, detector):
        """Dirty input is cleaned, deduplicated and capped."""
        links = ["https://a.test/catalogo.pdf", "mailto:ventas@a.test"]
        links += [f"/autos/{i}" for i in range(60)]
        links += ["/autos/0", "/autos/1"]

        result = detector.filter_promising_links(links, BASE_URL)

        assert len(result) == 50
        assert len(set(result)) == 50
        assert result[0] == "https://a.test/autos/0"
        assert not any(url.endswith(".pdf") or url.startswith("mailto:") for url in result)

    def test_accepts_harvested_dicts(self, detector):
        links = [{"href": "https://a.test/autos/1", "text": "Auto"}, {"href": None}, {"text": "no href"}]
        assert detector.filter_promising_links(links, BASE_URL) == ["https://a.test/autos/1"]

    @pytest.mark.parametrize("href", [
        "tel:5555555555",
        "javascript:void(0)",
        "/autos#fotos",
        "https://facebook.com/autos",
        "/login",
        "/signup?next=/autos",
        "/galeria/foto.JPG",
    ])
    def test_excluded_links(self, detector, href):
        assert detector.filter_promising_links([href], BASE_URL) == []

    def test_non_http_schemes_dropped(self, detector):
        assert detector.filter_promising_links(["ftp://a.test/autos"], BASE_URL) == []

    def test_relative_links_resolved(self, detector):
        result = detector.filter_promising_links(["sedan", "../partes"], "https://a.test/autos/")
        assert result == ["https://a.test/autos/sedan", "https://a.test/partes"]
