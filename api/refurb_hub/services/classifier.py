# refurb_hub/services/classifier.py
"""
Row Classifier - maps one inventory row to a ProductSpec.

Handles:
- Category detection (ordered predicates, first match wins)
- Display size (model-number table, inch markers in text, device defaults)
- Chip normalization (most specific variant first: "M3 Max" before "M3")
- Storage / memory normalization
- Year (explicit token, else estimated from chip generation)
- Variant attributes (color, condition grade, keyboard layout)
"""
from __future__ import annotations
import re
from typing import Callable, List, Optional, Tuple

from refurb_hub.domain import (
    DEFAULT_COLOR, DEFAULT_GRADE, KEYBOARD_ENGLISH, KEYBOARD_FRENCH, ProductSpec,
)
from refurb_hub.services.rows import RawRow

# Apple model number -> panel size
MODEL_SIZE_MAP = {
    # MacBook Pro 16"
    "A2141": '16"', "A2485": '16"', "A2780": '16"', "A2991": '16"',
    "A3112": '16"', "A3185": '16"', "A3401": '16"',
    # MacBook Pro 15" (Intel)
    "A1707": '15"', "A1990": '15"',
    # MacBook Pro 14"
    "A2442": '14"', "A2779": '14"', "A2992": '14"',
    # MacBook Pro 13"
    "A1706": '13"', "A1708": '13"', "A1989": '13"', "A2159": '13"',
    "A2251": '13"', "A2289": '13"', "A2338": '13"',
    # MacBook Air 15" (A3114 is also listed for 14" MBP; the Air reading wins)
    "A2941": '15"', "A3114": '15"', "A3241": '15"',
    # MacBook Air 13"
    "A1932": '13"', "A2337": '13"', "A2681": '13"', "A3113": '13"', "A3240": '13"',
    # iMac 24"
    "A2438": '24"', "A2439": '24"', "A2873": '24"', "A2874": '24"', "A3115": '24"',
    # iMac 27" / 21.5" (Intel)
    "A2115": '27"', "A1419": '27"', "A2116": '21.5"', "A1418": '21.5"',
    # iPad Pro 12.9"
    "A1584": '12.9"', "A1652": '12.9"', "A1670": '12.9"', "A1671": '12.9"',
    "A1876": '12.9"', "A2014": '12.9"', "A1895": '12.9"', "A2229": '12.9"',
    "A2069": '12.9"', "A2232": '12.9"', "A2378": '12.9"', "A2461": '12.9"',
    "A2379": '12.9"', "A2436": '12.9"', "A2764": '12.9"', "A2437": '12.9"',
    # iPad Pro 11"
    "A1980": '11"', "A2013": '11"', "A1934": '11"', "A2228": '11"',
    "A2068": '11"', "A2230": '11"', "A2377": '11"', "A2459": '11"',
    "A2301": '11"', "A2435": '11"', "A2761": '11"', "A2302": '11"',
    # iPad Pro 10.5" / 9.7"
    "A1701": '10.5"', "A1709": '10.5"', "A1673": '9.7"', "A1674": '9.7"', "A1675": '9.7"',
    # iPad Air 10.9"
    "A2316": '10.9"', "A2324": '10.9"', "A2325": '10.9"',
    "A2588": '10.9"', "A2589": '10.9"', "A2591": '10.9"',
    # iPad 10.2"
    "A2197": '10.2"', "A2200": '10.2"', "A2198": '10.2"', "A2270": '10.2"',
    "A2428": '10.2"', "A2429": '10.2"', "A2602": '10.2"', "A2603": '10.2"', "A2604": '10.2"',
    # iPad Mini 8.3"
    "A2568": '8.3"', "A2569": '8.3"', "A2567": '8.3"',
}

KNOWN_SIZES = (
    "27", "24", "21.5", "16", "15", "14", "13", "12.9", "11",
    "10.9", "10.5", "10.2", "9.7", "8.3", "6.7", "6.1", "5.4", "4.7",
)

# number followed by an inch marker; "16GB" never matches
_SIZE_RE = re.compile(
    r'(?<![\d.])(\d{1,2}(?:\.\d)?)\s*(?:"|”|″|\'\'|-?\s?inch(?:es)?\b|in\b)',
    re.IGNORECASE,
)
_YEAR_RE = re.compile(r"(?<!\d)(20\d{2})(?!\d)")
_MODEL_NO_RE = re.compile(r"\b([A-Z]\d{4})\b")
_GRADE_RE = re.compile(r"(?:^|[^A-Z])([ABCD])(?:[^A-Z]|$)")
_INTEL_RE = re.compile(r"\b(Core|Xeon|Celeron|Pentium)\s*(i[3579]|M\d|\w+)?", re.IGNORECASE)

# Most specific first
CHIP_VARIANTS: Tuple[str, ...] = (
    "M4 Max", "M4 Pro", "M4",
    "M3 Ultra", "M3 Max", "M3 Pro", "M3",
    "M2 Ultra", "M2 Max", "M2 Pro", "M2",
    "M1 Ultra", "M1 Max", "M1 Pro", "M1",
)
_CHIP_PATTERNS = [
    (chip, re.compile(r"\b" + r"\s*".join(chip.split()) + r"\b", re.IGNORECASE))
    for chip in CHIP_VARIANTS
]

CHIP_YEARS = (("M4", "2024"), ("M3", "2023"), ("M2", "2022"), ("M1", "2020"), ("Intel", "2019"))
DEFAULT_YEAR = "2022"

IPHONE_MODELS = {
    "iPhone 15": ('6.1"', "2023"),
    "iPhone 14": ('6.1"', "2022"),
    "iPhone 13": ('6.1"', "2021"),
    "iPhone 12": ('6.1"', "2020"),
    "iPhone 11": ('6.1"', "2019"),
    "iPhone SE": ('4.7"', "2022"),
}

IPAD_DEFAULT_SIZES = {
    "iPad Pro": '11"',
    "iPad Air": '10.9"',
    "iPad Mini": '8.3"',
    "iPad": '10.2"',
}

COLOR_MAP = {
    "space grey": "Space Gray",
    "space gray": "Space Gray",
    "spacegrey": "Space Gray",
    "spacegray": "Space Gray",
    "grey": "Space Gray",
    "gray": "Space Gray",
    "silver": "Silver",
    "gold": "Gold",
    "rose gold": "Rose Gold",
    "midnight": "Midnight",
    "starlight": "Starlight",
    "space black": "Space Black",
    "default": DEFAULT_COLOR,
}

_FRENCH_MARKERS = ("french", "français", "francais", "fr-ca", "canadian french", "cf keyboard")


# ============================================================================
# Field normalizers
# ============================================================================

def normalize_processor(processor: str) -> str:
    """Collapse processor text to a chip name, e.g. 'Apple M2 Pro 10-core' -> 'M2 Pro'."""
    text = " ".join((processor or "").split())
    if not text:
        return ""
    for chip, pattern in _CHIP_PATTERNS:
        if pattern.search(text):
            return chip
    if "intel" in text.lower():
        m = _INTEL_RE.search(text)
        if m:
            family = m.group(1).capitalize()
            tier = m.group(2) or ""
            return f"Intel {family} {tier}".strip()
        return "Intel"
    return text


def _format_amount(amount: float) -> str:
    return f"{amount:g}"


def normalize_storage(storage: str) -> str:
    """'512 gb ssd' -> '512GB', '1000' -> '1TB', '2T' -> '2TB'."""
    if not storage:
        return ""
    compact = re.sub(r"[^0-9.TGB]", "", str(storage).upper())
    m = re.search(r"(\d+(?:\.\d+)?)(TB|GB|T|G)?", compact)
    if not m:
        return str(storage).strip()
    amount = float(m.group(1))
    unit = {"T": "TB", "G": "GB"}.get(m.group(2) or "", m.group(2) or "")
    if unit in ("", "GB") and amount >= 1000:
        amount = amount / 1024 if amount % 1024 == 0 else amount / 1000
        unit = "TB"
    elif not unit:
        unit = "GB"
    return f"{_format_amount(amount)}{unit}"


def normalize_memory(memory: str) -> str:
    if not memory:
        return ""
    m = re.search(r"(\d+)", str(memory))
    if not m:
        return str(memory).strip()
    return f"{int(m.group(1))}GB"


def extract_year(*texts: str) -> str:
    m = _YEAR_RE.search(" ".join(t or "" for t in texts))
    return m.group(1) if m else ""


def estimate_year(processor: str) -> str:
    for marker, year in CHIP_YEARS:
        if marker in (processor or ""):
            return year
    return DEFAULT_YEAR


def extract_model_number(*texts: str) -> str:
    m = _MODEL_NO_RE.search(" ".join(t or "" for t in texts))
    return m.group(1) if m else ""


def size_from_text(*texts: str) -> str:
    """First inch-marked known panel size in the given texts."""
    for text in texts:
        for m in _SIZE_RE.finditer(text or ""):
            value = m.group(1)
            if value in KNOWN_SIZES:
                return f'{value}"'
    return ""


def default_mac_size(product_type: str, processor: str) -> str:
    chip = processor or ""
    if product_type == "MacBook Pro":
        if "Max" in chip:
            return '16"'
        if "Pro" in chip:
            return '14"'
        return '13"'
    if product_type == "iMac":
        return '24"' if re.search(r"\bM\d", chip) else '27"'
    return '13"'


def display_size(product_type: str, model: str, processor: str, model_number: str = "") -> str:
    """Model-number table, then inch markers in model/processor text, then a device default."""
    for candidate in (model_number, (model or "").strip().upper()):
        if candidate and candidate in MODEL_SIZE_MAP:
            return MODEL_SIZE_MAP[candidate]
    found = size_from_text(model, processor)
    if found:
        return found
    if product_type in IPAD_DEFAULT_SIZES:
        return IPAD_DEFAULT_SIZES[product_type]
    return default_mac_size(product_type, normalize_processor(processor))


def clean_color(color: str) -> str:
    if not color:
        return DEFAULT_COLOR
    key = " ".join(str(color).lower().split())
    return COLOR_MAP.get(key, str(color).strip())


def clean_condition(condition: str) -> str:
    """Grade letter A-D from free text ('Grade B', 'b-', 'C (scratches)'); default A."""
    text = str(condition or "").upper().strip()
    if not text:
        return DEFAULT_GRADE
    if text in ("A", "B", "C", "D"):
        return text
    text = re.sub(r"\bGRADE\b", " ", text)
    m = _GRADE_RE.search(text)
    return m.group(1) if m else DEFAULT_GRADE


def keyboard_layout(row: RawRow) -> str:
    text = f"{row.model} {row.comments} {row.processor}".lower()
    if any(marker in text for marker in _FRENCH_MARKERS):
        return KEYBOARD_FRENCH
    return KEYBOARD_ENGLISH


# ============================================================================
# Category branches
# ============================================================================

def _corpus(row: RawRow) -> str:
    return f"{row.model} {row.category} {row.processor} {row.brand}".lower()


def _mac_spec(row: RawRow, product_type: str, category: str = "Laptops") -> ProductSpec:
    model_number = extract_model_number(row.processor, row.model)
    processor = normalize_processor(row.processor)
    return ProductSpec(
        product_type=product_type,
        display_size=display_size(product_type, row.model, row.processor, model_number),
        processor=processor,
        storage=normalize_storage(row.storage),
        memory=normalize_memory(row.memory),
        year=extract_year(row.processor, row.model) or estimate_year(processor),
        model_number=model_number,
        category=category,
        device_family="Mac",
    )


def _is_macbook_pro(row: RawRow, text: str) -> bool:
    category = row.category.lower()
    return (
        "macbook pro" in text
        or ("laptop" in text and "pro" in text)
        or ("laptop" in category and "pro" in row.processor.lower())
    )


def _is_macbook_air(row: RawRow, text: str) -> bool:
    return "macbook air" in text or ("macbook" in text and "air" in text)


def _is_macbook(row: RawRow, text: str) -> bool:
    return "macbook" in text or ("laptop" in row.category.lower() and "apple" in row.brand.lower())


def _is_ipad(row: RawRow, text: str) -> bool:
    return "ipad" in text or "tablet" in row.category.lower()


def _is_iphone(row: RawRow, text: str) -> bool:
    return "iphone" in text or "phone" in row.category.lower()


def _is_imac(row: RawRow, text: str) -> bool:
    return "imac" in text


def _is_accessory(row: RawRow, text: str) -> bool:
    return (
        "airpod" in text
        or "accessor" in row.category.lower()
        or any(word in text for word in ("magic", "adapter", "cable"))
    )


def _macbook_pro(row: RawRow, text: str) -> ProductSpec:
    return _mac_spec(row, "MacBook Pro")


def _macbook_air(row: RawRow, text: str) -> ProductSpec:
    return _mac_spec(row, "MacBook Air")


def _macbook(row: RawRow, text: str) -> ProductSpec:
    return _mac_spec(row, "MacBook")


def _imac(row: RawRow, text: str) -> ProductSpec:
    return _mac_spec(row, "iMac", category="Desktops")


def _ipad_type(model: str) -> str:
    m = model.lower()
    if "ipad pro" in m:
        return "iPad Pro"
    if "ipad air" in m:
        return "iPad Air"
    if "ipad mini" in m:
        return "iPad Mini"
    return "iPad"


def _ipad(row: RawRow, text: str) -> ProductSpec:
    product_type = _ipad_type(row.model)
    model_number = extract_model_number(row.processor, row.model)
    processor = normalize_processor(row.processor)
    return ProductSpec(
        product_type=product_type,
        display_size=display_size(product_type, row.model, row.processor, model_number),
        processor=processor,
        storage=normalize_storage(row.storage),
        memory=normalize_memory(row.memory),
        year=extract_year(row.processor, row.model) or estimate_year(processor),
        model_number=model_number,
        category="Tablets",
        device_family="iPad",
    )


def _iphone_model(model: str) -> str:
    m = model.lower()
    for name in IPHONE_MODELS:
        if name.lower() in m:
            return name
    return "iPhone"


def _iphone(row: RawRow, text: str) -> ProductSpec:
    product_type = _iphone_model(row.model)
    size, year = IPHONE_MODELS.get(product_type, ('6.1"', DEFAULT_YEAR))
    return ProductSpec(
        product_type=product_type,
        display_size=size,
        processor=normalize_processor(row.processor),
        storage=normalize_storage(row.storage),
        memory="",  # phones are not sold by RAM
        year=extract_year(row.processor, row.model) or year,
        model_number=extract_model_number(row.processor, row.model),
        category="Phones",
        device_family="iPhone",
    )


def _accessory(row: RawRow, text: str) -> ProductSpec:
    if "airpods" in text:
        product_type = "AirPods"
    elif "magic mouse" in text:
        product_type = "Magic Mouse"
    elif "magic keyboard" in text:
        product_type = "Magic Keyboard"
    else:
        product_type = "Apple Accessory"
    return ProductSpec(
        product_type=product_type,
        year=extract_year(row.processor, row.model) or DEFAULT_YEAR,
        model_number=extract_model_number(row.processor, row.model),
        category="Accessories",
        device_family="Apple Accessory",
    )


# Order matters: "MacBook Pro" must be tested before the generic "MacBook".
CATEGORY_RULES: List[Tuple[str, Callable[[RawRow, str], bool], Callable[[RawRow, str], ProductSpec]]] = [
    ("macbook-pro", _is_macbook_pro, _macbook_pro),
    ("macbook-air", _is_macbook_air, _macbook_air),
    ("macbook", _is_macbook, _macbook),
    ("ipad", _is_ipad, _ipad),
    ("iphone", _is_iphone, _iphone),
    ("imac", _is_imac, _imac),
    ("accessory", _is_accessory, _accessory),
]


def classify(row: RawRow) -> Optional[ProductSpec]:
    """Classify one row; None when no category predicate matches."""
    text = _corpus(row)
    if not text.strip():
        return None
    for _name, matches, build in CATEGORY_RULES:
        if matches(row, text):
            return build(row, text)
    return None
