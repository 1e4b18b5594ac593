"""Vehicle and spare-part record extraction from rendered HTML."""

import logging
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from autocrawl.models import PartRecord, VehicleRecord

logger = logging.getLogger(__name__)


BRANDS = [
    'toyota', 'honda', 'ford', 'chevrolet', 'nissan', 'volkswagen',
    'bmw', 'mercedes-benz', 'mercedes', 'audi', 'mazda', 'hyundai',
    'kia', 'subaru', 'jeep', 'dodge', 'ram', 'gmc', 'cadillac',
    'lexus', 'infiniti', 'acura', 'volvo', 'porsche', 'jaguar',
    'land rover', 'mini', 'fiat', 'peugeot', 'renault', 'seat',
    'skoda', 'opel', 'citroën', 'alfa romeo', 'mitsubishi', 'suzuki',
]

COMMON_MODELS = [
    'civic', 'corolla', 'camry', 'accord', 'sentra', 'altima',
    'focus', 'fiesta', 'mustang', 'silverado', 'f-150', 'ram',
    'cr-v', 'rav4', 'pilot', 'highlander', 'pathfinder', 'explorer',
]

LISTING_SELECTORS = [
    '.vehicle', '.car', '.listing', '.item',
    '[class*="vehicle"]', '[class*="car"]', '[class*="listing"]',
    'article', '.card', '.product',
]

PART_SELECTORS = [
    '.part', '.repuesto', '.refaccion', '.product',
    '.product-card', '.product-item', '.product-listing',
    '.producto', '.detalle-producto', '.card-product',
    '[class*="part"]', '[class*="repuesto"]', '[class*="product"]',
    'article', '.item',
]

PART_KEYWORDS = [
    'freno', 'llanta', 'neumático', 'batería', 'filtro',
    'aceite', 'amortiguador', 'radiador', 'alternador', 'bujía',
    'pastilla', 'balata', 'disco', 'rotor', 'bomba', 'correa',
    'embrague', 'clutch', 'inyector', 'sensor', 'paragolpe',
    'defensa', 'espejo', 'faro', 'foco', 'led', 'limpiaparabrisas',
    'escape', 'silenciador', 'catalizador',
]

DESCRIPTION_SELECTOR = 'p, .description, .desc, [class*="desc"]'
PART_TITLE_SELECTOR = 'h1, h2, h3, .title, .product-title, [itemprop="name"]'
PART_DESCRIPTION_SELECTOR = 'p, .description, .desc, [itemprop="description"]'

YEAR_PATTERN = re.compile(r'\b(?:19|20)\d{2}\b')
PART_NUMBER_PATTERN = re.compile(
    r'(?:part\s*number|n[úu]mero\s*de\s*parte|sku|ref|pn)[:\s]+([A-Z0-9\-._]+)', re.IGNORECASE
)
COMPATIBLE_PATTERNS = [
    re.compile(r'(?:compatible\s*con|para|fits?|aplica\s*para)[:\s]+([^\n,]{5,80})', re.IGNORECASE),
    re.compile(r'(?:para\s+veh[ií]culos?)[:\s]+([^\n,]{5,80})', re.IGNORECASE),
]
MODEL_YEAR_PATTERN = re.compile(r'\b[a-z0-9]{2,}\b\s+\d{4}')
PART_NAME_PATTERN = re.compile(r'^[^\n]{6,120}')

# Characters around a year/brand pair taken as their shared context
PROXIMITY_WINDOW = 200
CONTEXT_LEAD = 50
MAX_DESCRIPTION_LENGTH = 500


def _capitalize(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value[0].upper() + value[1:]


class DataExtractor:
    """
    Heuristic extractor for vehicle and spare-part records.

    Vehicles are found by pairing model years with nearby brand names in
    the page text, falling back to listing cards when no pair is found.
    Parts come from product-like cards that mention part vocabulary.
    """

    def __init__(self, brands: Optional[List[str]] = None, models: Optional[List[str]] = None):
        self.brands = brands or BRANDS
        self.models = models or COMMON_MODELS

    # --- Vehicles ---

    def extract_vehicles(self, html: str, url: str) -> List[VehicleRecord]:
        """Extract vehicles from a page.

        Args:
            html: Rendered page HTML
            url: Page URL (for logging)

        Returns:
            Valid vehicles, deduplicated on (brand, model, year)
        """
        soup = BeautifulSoup(html or "", 'html.parser')
        body = soup.body or soup
        text = body.get_text(" ").lower()
        description = self._first_text(soup, DESCRIPTION_SELECTOR)

        vehicles: List[VehicleRecord] = []
        patterns = self._find_vehicle_patterns(text)
        if patterns:
            for pattern in patterns:
                vehicle = self._parse_vehicle(pattern['context'], pattern['brand'], description)
                if vehicle.is_valid():
                    vehicles.append(vehicle)
        else:
            vehicles.extend(self._extract_from_listings(soup, description))

        unique = self._dedupe(vehicles)
        logger.debug(f"Extracted {len(unique)} vehicle(s) from {url}")
        return unique

    def _find_vehicle_patterns(self, text: str) -> List[Dict[str, str]]:
        patterns = []
        for match in YEAR_PATTERN.finditer(text):
            year_index = match.start()
            for brand in self.brands:
                brand_index = text.find(brand)
                if brand_index == -1:
                    continue
                if abs(brand_index - year_index) < PROXIMITY_WINDOW:
                    start = max(0, min(brand_index, year_index) - CONTEXT_LEAD)
                    end = max(brand_index, year_index) + PROXIMITY_WINDOW
                    patterns.append({
                        'year': match.group(0),
                        'brand': brand,
                        'context': text[start:end],
                    })
        return patterns

    def _parse_vehicle(self, context: str, brand: str, description: Optional[str]) -> VehicleRecord:
        context = context.lower()

        year_match = YEAR_PATTERN.search(context)
        year = int(year_match.group(0)) if year_match else None

        for candidate in self.brands:
            if candidate in context:
                brand = candidate
                break

        model = None
        brand_index = context.find(brand) if brand else -1
        after_brand = context[brand_index + len(brand):brand_index + 100] if brand_index >= 0 else ""
        for candidate in self.models:
            if candidate in after_brand:
                model = candidate
                break
        if model is None:
            words = [w for w in after_brand.split() if len(w) > 2]
            if words:
                model = words[0]

        condition = None
        # 'seminuevo' contains 'nuevo', so it is checked first
        if 'seminuevo' in context or 'semi' in context:
            condition = 'seminuevo'
        elif 'nuevo' in context or 'new' in context:
            condition = 'nuevo'
        elif 'usado' in context or 'used' in context:
            condition = 'usado'

        return VehicleRecord(
            year=year,
            brand=_capitalize(brand),
            model=_capitalize(model),
            condition=condition,
            description=description,
        )

    def _extract_from_listings(self, soup: BeautifulSoup, description: Optional[str]) -> List[VehicleRecord]:
        vehicles = []
        for selector in LISTING_SELECTORS:
            for element in soup.select(selector):
                text = element.get_text(" ").lower()
                if not YEAR_PATTERN.search(text):
                    continue
                brand = next((b for b in self.brands if b in text), None)
                if brand is None:
                    continue
                vehicle = self._parse_vehicle(text, brand, description)
                if vehicle.is_valid():
                    vehicles.append(vehicle)
        return vehicles

    # --- Parts ---

    def extract_parts(self, html: str, url: str) -> List[PartRecord]:
        """Extract spare parts from product-like cards on a page."""
        soup = BeautifulSoup(html or "", 'html.parser')
        parts: List[PartRecord] = []

        for selector in PART_SELECTORS:
            for element in soup.select(selector):
                element_text = element.get_text("\n")
                lowered = element_text.lower()
                if not any(keyword in lowered for keyword in PART_KEYWORDS):
                    continue
                part = self._parse_part(element, element_text)
                if part.is_valid():
                    parts.append(part)

        unique = self._dedupe(parts)
        logger.debug(f"Extracted {len(unique)} part(s) from {url}")
        return unique

    def _parse_part(self, element, text: str) -> PartRecord:
        lowered = text.lower()
        stripped = text.strip()

        title = element.select_one(PART_TITLE_SELECTOR)
        part_name = title.get_text(" ", strip=True) if title else None
        if not part_name:
            name_match = PART_NAME_PATTERN.search(stripped)
            part_name = name_match.group(0).strip() if name_match else None

        number_match = PART_NUMBER_PATTERN.search(text)
        part_number = number_match.group(1) if number_match else None

        brand = next((b for b in self.brands if b in lowered), None)

        compatible = None
        for pattern in COMPATIBLE_PATTERNS:
            compatible_match = pattern.search(text)
            if compatible_match:
                compatible = compatible_match.group(1).strip()
                break
        if not compatible and brand:
            model_match = MODEL_YEAR_PATTERN.search(lowered)
            compatible = " ".join(p for p in (brand, model_match.group(0) if model_match else None) if p).strip() or None

        description_element = element.select_one(PART_DESCRIPTION_SELECTOR)
        description = description_element.get_text(" ", strip=True) if description_element else ""
        description = description or stripped[:MAX_DESCRIPTION_LENGTH]

        return PartRecord(
            part_name=part_name or 'Autoparte',
            part_number=part_number,
            brand=_capitalize(brand),
            compatible_vehicle=compatible,
            description=description or None,
        )

    # --- Links ---

    def extract_links(self, html: str, base_url: str) -> List[Dict[str, str]]:
        """All anchors on a page as {'href', 'text'} dicts, hrefs unresolved."""
        soup = BeautifulSoup(html or "", 'html.parser')
        return [
            {'href': a.get('href'), 'text': a.get_text(strip=True)}
            for a in soup.find_all('a', href=True)
        ]

    # --- Helpers ---

    @staticmethod
    def _first_text(soup: BeautifulSoup, selector: str) -> Optional[str]:
        element = soup.select_one(selector)
        if element is None:
            return None
        text = element.get_text(" ", strip=True)[:MAX_DESCRIPTION_LENGTH]
        return text or None

    @staticmethod
    def _dedupe(records: list) -> list:
        seen = set()
        unique = []
        for record in records:
            key = record.dedupe_key()
            if key in seen:
                continue
            seen.add(key)
            unique.append(record)
        return unique
