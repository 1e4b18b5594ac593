"""
Relevance gate for automotive pages.

Scores a page on vehicle and spare-part vocabulary, year and price
mentions, and URL hints. The orchestrator uses the score to decide
whether to extract records and whether to follow a page's links.
"""
import logging
import re
from typing import Iterable, List, Optional, Union
from urllib.parse import urljoin, urlparse

from autocrawl.constants import MAX_PROMISING_LINKS
from autocrawl.models import ContentType, RelevanceAssessment

logger = logging.getLogger(__name__)


VEHICLE_KEYWORDS = [
    'auto', 'carro', 'vehículo', 'automóvil', 'coche',
    'marca', 'modelo', 'año', 'kilometraje', 'km',
    'toyota', 'honda', 'ford', 'chevrolet', 'nissan', 'volkswagen',
    'bmw', 'mercedes', 'audi', 'mazda', 'hyundai', 'kia',
    'precio', 'venta', 'usado', 'nuevo', 'seminuevo',
    'motor', 'transmisión', 'combustible', 'gasolina', 'diésel',
    'sedan', 'suv', 'pickup', 'hatchback', 'coupe',
]

PARTS_KEYWORDS = [
    'autoparte', 'repuesto', 'refacción', 'pieza',
    'freno', 'llanta', 'neumático', 'batería', 'filtro',
    'aceite', 'amortiguador', 'radiador', 'alternador',
    'bujía', 'pastilla', 'disco', 'bomba', 'correa',
    'part number', 'número de parte', 'compatible con',
]

VEHICLE_URL_HINTS = ['auto', 'carro', 'vehiculo', 'coche']
PARTS_URL_HINTS = ['parte', 'repuesto', 'refaccion']

PROMISING_URL_PATTERNS = [
    'auto', 'carro', 'vehiculo', 'coche', 'car',
    'parte', 'repuesto', 'refaccion', 'part',
    'venta', 'compra', 'usado', 'nuevo',
    'marca', 'modelo', 'year',
]

EXCLUDED_EXTENSIONS = [
    '.pdf', '.jpg', '.jpeg', '.png', '.gif',
    '.zip', '.rar', '.exe', '.mp4', '.avi',
]

EXCLUDED_LINK_PATTERNS = [
    'mailto:', 'tel:', 'javascript:', '#',
    'facebook', 'twitter', 'instagram', 'youtube',
    'login', 'register', 'signup', 'logout',
]

YEAR_PATTERN = re.compile(r'\b(?:19|20)\d{2}\b')
PRICE_PATTERN = re.compile(r'\$\s*[\d,]+|\d+[\d,]*\s*(?:pesos|dólares|usd|mxn)', re.IGNORECASE)


class RelevanceDetector:
    """Keyword-count relevance heuristic for vehicle and spare-part pages."""

    def __init__(
        self,
        vehicle_keywords: Optional[List[str]] = None,
        parts_keywords: Optional[List[str]] = None,
        max_links: int = MAX_PROMISING_LINKS,
    ):
        self.vehicle_keywords = vehicle_keywords or VEHICLE_KEYWORDS
        self.parts_keywords = parts_keywords or PARTS_KEYWORDS
        self.max_links = max_links

    @staticmethod
    def _count(keywords: Iterable[str], text: str) -> int:
        # Substring counts, so 'auto' also matches inside 'autoparte'
        return sum(text.count(keyword) for keyword in keywords)

    def score(self, text: str, url: str, title: str = '') -> RelevanceAssessment:
        """Score a page.

        Args:
            text: Visible page text
            url: Page URL
            title: Page title

        Returns:
            RelevanceAssessment with the score rounded to one decimal
        """
        full_text = f"{title or ''} {text or ''}".lower()
        score = 0.0

        vehicle_score = self._count(self.vehicle_keywords, full_text)
        parts_score: float = self._count(self.parts_keywords, full_text)

        # Years hint at vehicle listings
        vehicle_score += len(YEAR_PATTERN.findall(full_text)) * 2

        # Prices hint at commercial content
        score += len(PRICE_PATTERN.findall(full_text))

        url_lower = (url or '').lower()
        if any(hint in url_lower for hint in VEHICLE_URL_HINTS):
            score += 5
        if any(hint in url_lower for hint in PARTS_URL_HINTS):
            parts_score += 3

        score += vehicle_score * 1.5
        score += parts_score * 1.2

        if vehicle_score > parts_score and vehicle_score > 3:
            content_type = ContentType.VEHICLE
        elif parts_score > vehicle_score and parts_score > 2:
            content_type = ContentType.PART
        elif score > 5:
            content_type = ContentType.MIXED
        else:
            content_type = ContentType.UNKNOWN

        return RelevanceAssessment(
            score=round(score, 1),
            content_type=content_type,
            vehicle_score=vehicle_score,
            parts_score=parts_score,
        )

    def is_promising_url(self, url: str) -> bool:
        url_lower = url.lower()
        return any(pattern in url_lower for pattern in PROMISING_URL_PATTERNS)

    def filter_promising_links(
        self,
        links: Iterable[Union[str, dict]],
        base_url: str,
    ) -> List[str]:
        """Filter harvested anchors down to crawlable absolute URLs.

        Drops non-document extensions, mail/phone/script/fragment links,
        social networks and auth pages, resolves relative links against
        base_url, removes duplicates (first occurrence wins) and caps the
        result at max_links.

        Args:
            links: Hrefs, or dicts with an 'href' key as harvested from the page
            base_url: URL of the page the links came from

        Returns:
            List of absolute URLs
        """
        result: List[str] = []
        seen = set()

        for link in links:
            href = link.get('href') if isinstance(link, dict) else link
            if not href or not isinstance(href, str):
                continue

            href_lower = href.lower()
            if any(href_lower.endswith(ext) for ext in EXCLUDED_EXTENSIONS):
                continue
            if any(pattern in href_lower for pattern in EXCLUDED_LINK_PATTERNS):
                continue

            try:
                absolute = href if href.startswith('http') else urljoin(base_url, href)
            except ValueError:
                continue
            if urlparse(absolute).scheme not in ('http', 'https'):
                continue

            if absolute in seen:
                continue
            seen.add(absolute)
            result.append(absolute)

            if len(result) >= self.max_links:
                break

        return result
