# refurb_hub/services/content.py
"""
Catalog Content Generator - titles, handles, SEO copy, tags, collections and prices.

Every function here is a pure function of a ProductSpec and (optionally) its
variant buckets: no I/O, same inputs always give the same output.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from html import escape
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from refurb_hub.domain import (
    DEFAULT_GRADE, GRADES, KEYBOARD_ENGLISH, KEYBOARD_FRENCH,
    ProductGroup, ProductSpec, VariantBucket,
)

TITLE_MAX = 60
HANDLE_MAX = 255
SEO_DESCRIPTION_MAX = 160

# Grade -> share of retail price charged
GRADE_MULTIPLIERS: Dict[str, Decimal] = {
    "A": Decimal("0.70"),
    "B": Decimal("0.68"),
    "C": Decimal("0.66"),
    "D": Decimal("0.61"),
}
GRADE_LABELS = {"A": "Like-New", "B": "Excellent", "C": "Good", "D": "Fair"}

RETAIL_PRICES = {
    "MacBook Pro": 2799, "MacBook Air": 1599, "MacBook": 1999,
    "iPad Pro": 1399, "iPad Air": 899, "iPad": 579, "iPad Mini": 699,
    "iPhone 15": 1129, "iPhone 14": 999, "iPhone 13": 849, "iPhone 12": 699,
    "iPhone 11": 579, "iPhone SE": 579, "iPhone": 849,
    "iMac": 1799, "Mac Studio": 2799, "Mac Mini": 899,
    "AirPods": 229, "Magic Mouse": 129, "Magic Keyboard": 229, "Apple Accessory": 129,
}
BASE_PRICES = {
    "MacBook Pro": 2299, "MacBook Air": 1399, "MacBook": 1599,
    "iPad Pro": 1149, "iPad Air": 779, "iPad": 449, "iPad Mini": 649,
    "iPhone": 899, "iMac": 1699, "Mac Studio": 2499, "Mac Mini": 799,
    "AirPods": 199, "Magic Mouse": 99, "Magic Keyboard": 199, "Apple Accessory": 99,
}
DEFAULT_PRICE = 999

# (threshold, retail bump, base bump)
STORAGE_TIERS: Tuple[Tuple[int, int, int], ...] = ((2000, 1000, 800), (1000, 500, 400), (512, 300, 200))
MEMORY_TIERS: Tuple[Tuple[int, int, int], ...] = ((64, 1400, 1000), (32, 800, 600), (16, 500, 400))
# checked in this order, first hit only
CHIP_TIERS: Tuple[Tuple[str, int, int], ...] = (("Max", 1000, 800), ("Pro", 500, 400), ("Ultra", 1500, 1200))
DISPLAY_TIERS: Tuple[Tuple[float, int], ...] = ((16, 300), (15, 200))

WEIGHTS_KG = {
    "MacBook Pro": 2.0, "MacBook Air": 1.3, "MacBook": 1.5,
    "iPad Pro": 0.7, "iPad Air": 0.6, "iPad": 0.5, "iPad Mini": 0.3,
    "iPhone": 0.2, "iMac": 4.5, "Mac Studio": 2.7, "Mac Mini": 1.2,
    "AirPods": 0.1, "Magic Mouse": 0.1, "Magic Keyboard": 0.3, "Apple Accessory": 0.2,
}

CONDITION_DESCRIPTIONS = {
    "A": "Excellent condition - Like new appearance with minimal wear. Perfect for professionals who want the best.",
    "B": "Very good condition - Light cosmetic wear but excellent functionality. Great balance of value and quality.",
    "C": "Good condition - Visible wear but fully functional. Ideal for budget-conscious buyers who want reliability.",
    "D": "Fair condition - Heavy wear but guaranteed functionality. Maximum savings for those who prioritize price.",
}

UNIVERSAL_TAGS = ("refurbished", "apple", "certified")
REGIONAL_TAGS = ("canada", "canadian", "macbook-depot")
KEYBOARD_TAGS = {
    KEYBOARD_FRENCH: ("french-canadian", "french-keyboard", "bilingual", "qwerty-french", "fr-ca"),
    KEYBOARD_ENGLISH: ("english-canadian", "english-keyboard", "canadian-english", "en-ca"),
}
UNIVERSAL_COLLECTIONS = ("Certified Refurbished", "Apple")

Variants = Union[Mapping[str, VariantBucket], Iterable[VariantBucket], None]


def _buckets(variants: Variants) -> List[VariantBucket]:
    if variants is None:
        return []
    if isinstance(variants, Mapping):
        return list(variants.values())
    return list(variants)


def _unique(items: Iterable[str]) -> List[str]:
    out: List[str] = []
    for item in items:
        if item and item not in out:
            out.append(item)
    return out


# ============================================================================
# Number helpers
# ============================================================================

def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def storage_gb(storage: str) -> int:
    """'512GB' -> 512, '1TB' -> 1000, '2TB' -> 2000."""
    m = re.search(r"(\d+(?:\.\d+)?)\s*(TB|GB)?", storage or "", re.IGNORECASE)
    if not m:
        return 0
    amount = Decimal(m.group(1))
    if (m.group(2) or "").upper() == "TB":
        amount *= 1000
    return int(amount)


def memory_gb(memory: str) -> int:
    m = re.search(r"\d+", memory or "")
    return int(m.group(0)) if m else 0


def display_inches(display_size: str) -> float:
    m = re.search(r"\d+(?:\.\d+)?", display_size or "")
    return float(m.group(0)) if m else 0.0


# ============================================================================
# Pricing
# ============================================================================

def _tier_bump(value: int, tiers: Sequence[Tuple[int, int, int]], column: int) -> int:
    for threshold, *bumps in tiers:
        if value >= threshold:
            return bumps[column]
    return 0


def _chip_bump(processor: str, column: int) -> int:
    for marker, *bumps in CHIP_TIERS:
        if marker in (processor or ""):
            return bumps[column]
    return 0


def retail_price(spec: ProductSpec) -> int:
    """Estimated new retail price: type base plus storage/memory/chip/display adjustments."""
    price = RETAIL_PRICES.get(spec.product_type, DEFAULT_PRICE)
    price += _tier_bump(storage_gb(spec.storage), STORAGE_TIERS, 0)
    price += _tier_bump(memory_gb(spec.memory), MEMORY_TIERS, 0)
    price += _chip_bump(spec.processor, 0)
    inches = display_inches(spec.display_size)
    for threshold, bump in DISPLAY_TIERS:
        if inches >= threshold:
            price += bump
            break
    return price


def _base_type(product_type: str) -> str:
    if product_type.startswith("iPhone"):
        return "iPhone"
    return product_type


def base_price(spec: ProductSpec) -> int:
    """Listing base price, used for the default variant when a group has no buckets."""
    price = BASE_PRICES.get(_base_type(spec.product_type), DEFAULT_PRICE)
    price += _tier_bump(storage_gb(spec.storage), STORAGE_TIERS, 1)
    price += _tier_bump(memory_gb(spec.memory), MEMORY_TIERS, 1)
    price += _chip_bump(spec.processor, 1)
    return price


def variant_price(spec: ProductSpec, grade: str) -> int:
    multiplier = GRADE_MULTIPLIERS.get(grade, GRADE_MULTIPLIERS[DEFAULT_GRADE])
    return round_half_up(Decimal(retail_price(spec)) * multiplier)


def compare_at_price(spec: ProductSpec, grade: str = DEFAULT_GRADE) -> int:
    return retail_price(spec)


def discount_percent(grade: str) -> int:
    """30 for A, 32 for B, 34 for C, 39 for D."""
    multiplier = GRADE_MULTIPLIERS.get(grade, GRADE_MULTIPLIERS[DEFAULT_GRADE])
    return round_half_up((Decimal(1) - multiplier) * 100)


def estimate_weight(product_type: str) -> float:
    return WEIGHTS_KG.get(_base_type(product_type or ""), 1.0)


def condition_description(grade: str) -> str:
    return CONDITION_DESCRIPTIONS.get(grade, CONDITION_DESCRIPTIONS[DEFAULT_GRADE])


# ============================================================================
# Title / handle / SKU
# ============================================================================

def _short_processor(processor: str) -> str:
    return (processor or "").replace("Apple ", "").replace(" chip", "").replace(" Chip", "").strip()


def generate_title(spec: ProductSpec) -> str:
    parts = ["Refurbished", spec.product_type, spec.display_size,
             _short_processor(spec.processor), spec.year, spec.storage, spec.memory]
    title = " ".join(p for p in parts if p)
    if len(title) > TITLE_MAX:
        return title[:TITLE_MAX - 3] + "..."
    return title


def _slug(text: str) -> str:
    s = re.sub(r"[^a-z0-9-]", "", text.lower())
    s = re.sub(r"-+", "-", s)
    return s.strip("-")


def generate_handle(spec: ProductSpec) -> str:
    """URL handle, e.g. refurbished-macbook-pro-14-m2-pro-2023-512gb-16gb."""
    processor = re.sub(r"apple\s+", "", (spec.processor or "").lower())
    processor = re.sub(r"\s+chip", "", processor)
    parts = [
        "refurbished",
        re.sub(r"\s+", "-", spec.product_type.lower()),
        re.sub(r"[^0-9.]", "", spec.display_size or ""),
        re.sub(r"\s+", "-", processor),
        spec.year,
        (spec.storage or "").lower(),
        (spec.memory or "").lower(),
    ]
    handle = _slug("-".join(p for p in parts if p))
    return handle[:HANDLE_MAX].strip("-")


def collection_handle(name: str) -> str:
    return _slug(re.sub(r"\s+", "-", (name or "").lower()))


def variant_sku(spec: ProductSpec, color: str, condition: str, keyboard_layout: str) -> str:
    parts = [
        re.sub(r"\s+", "", spec.product_type)[:4].upper(),
        re.sub(r"\D", "", spec.display_size or "")[:2],
        re.sub(r"\s+", "", spec.processor or "")[:3].upper(),
        re.sub(r"\D", "", spec.storage or ""),
        (color or "")[:2].upper(),
        (condition or "").upper(),
        "FR" if keyboard_layout == KEYBOARD_FRENCH else "EN",
    ]
    return "-".join(p for p in parts if p)


# ============================================================================
# Grade aggregation
# ============================================================================

def grade_counts(variants: Variants) -> Dict[str, int]:
    """Summed quantity per grade, in first-seen order."""
    counts: Dict[str, int] = {}
    for bucket in _buckets(variants):
        counts[bucket.condition] = counts.get(bucket.condition, 0) + bucket.quantity
    return counts


def dominant_grade(variants: Variants) -> str:
    """Grade with the largest summed quantity; on a tie the grade seen first wins."""
    counts = grade_counts(variants)
    best = DEFAULT_GRADE
    best_count = -1
    for grade, count in counts.items():
        if count > best_count:
            best, best_count = grade, count
    return best


def keyboard_layouts(variants: Variants) -> List[str]:
    return _unique(b.keyboard_layout for b in _buckets(variants))


def keyboard_info(variants: Variants) -> str:
    layouts = keyboard_layouts(variants)
    if KEYBOARD_FRENCH in layouts and KEYBOARD_ENGLISH in layouts:
        return "Available in English and French Canadian keyboards"
    if KEYBOARD_FRENCH in layouts:
        return "French Canadian keyboard"
    return "English keyboard"


# ============================================================================
# SEO copy
# ============================================================================

_SEO_TEMPLATES = {
    "A": ("Certified refurbished {name} {chip} like-new condition. Save {pct}% vs retail. "
          "90-day warranty, free North American shipping. Shop premium quality!"),
    "B": ("Refurbished {name} {chip} excellent condition. Save {pct}% vs retail. "
          "90-day warranty, free shipping across North America. Great value today!"),
    "C": ("Save {pct}% on refurbished {name} {chip}. Fully tested, 90-day warranty, "
          "free North American shipping. Budget-friendly Apple quality - order now!"),
    "D": ("Maximum savings! {name} {chip} refurbished - save {pct}% vs retail. "
          "90-day warranty included. Best value Apple quality - shop now!"),
}


def _display_name(spec: ProductSpec) -> str:
    return f"{spec.product_type} {spec.display_size}".strip()


def seo_description(spec: ProductSpec, variants: Variants = None) -> str:
    grade = dominant_grade(variants)
    template = _SEO_TEMPLATES.get(grade, _SEO_TEMPLATES[DEFAULT_GRADE])
    text = template.format(
        name=_display_name(spec),
        chip=_short_processor(spec.processor) or "Apple",
        pct=discount_percent(grade),
    )
    text = " ".join(text.split())
    if len(text) > SEO_DESCRIPTION_MAX:
        text = text[:SEO_DESCRIPTION_MAX - 3] + "..."
    return text


# ============================================================================
# Product description (HTML body)
# ============================================================================

FAQ: Tuple[Tuple[str, str], ...] = (
    ("Is this genuine Apple hardware?",
     "100% authentic Apple hardware - never knockoffs or third-party parts."),
    ("What does Grade A, B, C, D mean?",
     "Grade A=like-new (30% off), Grade B=excellent (32% off), "
     "Grade C=good (34% off), Grade D=fair (39% off retail)."),
    ("Do I get a warranty?",
     "Yes! Every device includes our 90-day warranty."),
    ("Can I return if not satisfied?",
     "Absolutely! 30-day no-questions-asked return policy."),
)


@dataclass(frozen=True)
class DescriptionInput:
    """Facts rendered into the product body."""
    product_type: str
    display_size: str
    processor: str
    storage: str
    memory: str
    year: str
    retail_price: int
    grade_prices: Tuple[Tuple[str, int], ...]
    dominant_grade: str
    keyboard_info: str

    @classmethod
    def from_spec(cls, spec: ProductSpec, variants: Variants = None) -> "DescriptionInput":
        return cls(
            product_type=spec.product_type,
            display_size=spec.display_size,
            processor=spec.processor,
            storage=spec.storage,
            memory=spec.memory,
            year=spec.year,
            retail_price=retail_price(spec),
            grade_prices=tuple((g, variant_price(spec, g)) for g in GRADES),
            dominant_grade=dominant_grade(variants),
            keyboard_info=keyboard_info(variants),
        )

    @property
    def lowest_price(self) -> int:
        return min(price for _, price in self.grade_prices)


def _audience(product_type: str) -> str:
    if "Pro" in product_type:
        return ("Perfect for creative professionals, developers and power users who need "
                "peak performance for video editing, 3D rendering and heavy multitasking.")
    if "Air" in product_type:
        return ("Ideal for students and everyday users who need portability without "
                "sacrificing performance.")
    return "Great for anyone who needs reliable Apple performance for work and daily computing."


def _money(amount: int) -> str:
    return f"${amount:,}"


def product_description(inp: DescriptionInput) -> str:
    """Render the HTML product body. Only the prices, discounts and specs are contractual."""
    e = escape
    name = f"{inp.product_type} {inp.display_size}".strip()
    headline = " ".join(p for p in (name, inp.processor, inp.year) if p)
    prices = dict(inp.grade_prices)

    lines: List[str] = ['<div class="refurb-product">']
    lines.append(
        f'<p class="hero"><strong>Save up to {max(discount_percent(g) for g in prices)}% off retail!</strong> '
        f"{e(headline)} - starting from {_money(inp.lowest_price)}. "
        f"<small>Retail price: {_money(inp.retail_price)}</small></p>"
    )
    lines.append(f"<p>{e(_audience(inp.product_type))}</p>")

    lines.append("<h2>Price by Condition Grade</h2>")
    lines.append("<ul>")
    for grade, price in inp.grade_prices:
        marker = " (most available)" if grade == inp.dominant_grade else ""
        saving = inp.retail_price - price
        lines.append(
            f"<li><strong>Grade {grade} ({GRADE_LABELS.get(grade, grade)}){marker}:</strong> "
            f"{_money(price)} - save {_money(saving)} ({discount_percent(grade)}%)</li>"
        )
    lines.append("</ul>")

    lines.append("<h2>Specifications</h2>")
    lines.append("<table>")
    for label, value in (
        ("Model", inp.product_type),
        ("Display", inp.display_size),
        ("Processor", inp.processor),
        ("Storage", inp.storage),
        ("Memory", inp.memory),
        ("Year", inp.year),
        ("Keyboard", inp.keyboard_info),
    ):
        if value:
            lines.append(f"<tr><th>{label}</th><td>{e(value)}</td></tr>")
    lines.append("</table>")

    lines.append("<h2>Frequently Asked Questions</h2>")
    lines.append("<dl>")
    for question, answer in FAQ + (("What keyboard options are available?", f"{inp.keyboard_info}."),):
        lines.append(f"<dt>{e(question)}</dt><dd>{e(answer)}</dd>")
    lines.append("</dl>")
    lines.append("</div>")
    return "\n".join(lines)


# ============================================================================
# Tags / collections
# ============================================================================

def _chip_family(processor: str) -> Optional[str]:
    m = re.search(r"\bM([1-4])\b", processor or "")
    return f"M{m.group(1)}" if m else None


def size_bucket(display_size: str) -> str:
    inches = display_inches(display_size)
    if inches >= 15:
        return "Large Screen"
    if inches >= 13:
        return "Standard Screen"
    if inches > 0:
        return "Compact"
    return ""


def collections(spec: ProductSpec) -> List[str]:
    names = [spec.product_type, spec.category, spec.device_family]
    family = _chip_family(spec.processor)
    if family:
        names.append(f"{family} Chip Devices")
    elif "Intel" in (spec.processor or ""):
        names.append("Intel Mac")
    if spec.year:
        names.append(f"{spec.year} Models")
    names.append(size_bucket(spec.display_size))
    names.extend(UNIVERSAL_COLLECTIONS)
    return _unique(names)


def _dash(text: str) -> str:
    return re.sub(r"\s+", "-", (text or "").strip().lower())


def tags(spec: ProductSpec, variants: Variants = None) -> List[str]:
    out: List[str] = list(UNIVERSAL_TAGS)
    out.append(_dash(spec.product_type))
    processor = spec.processor or ""
    if processor:
        out.append(_dash(processor))
        family = _chip_family(processor)
        if family:
            out.append(f"{family.lower()}-chip")
        for tier in ("Ultra", "Max", "Pro"):
            if tier in processor:
                out.append(f"{tier.lower()}-chip")
                break
        if family:
            out.append("apple-silicon")
        elif "Intel" in processor:
            out.append("intel")
    if spec.storage:
        out.append(spec.storage.lower())
    if spec.memory:
        out.append(spec.memory.lower().replace("gb", "gb-ram"))
    if spec.display_size:
        out.append(re.sub(r"[^\w]", "", spec.display_size.lower()))
    if spec.year:
        out.append(spec.year)
    for layout in keyboard_layouts(variants) or [KEYBOARD_ENGLISH]:
        out.extend(KEYBOARD_TAGS.get(layout, ()))
    out.append(_dash(spec.device_family))
    out.append(_dash(spec.category))
    out.extend(REGIONAL_TAGS)
    out.append(_dash(size_bucket(spec.display_size)))
    return _unique(out)


# ============================================================================
# Group decoration
# ============================================================================

def decorate_bucket(spec: ProductSpec, bucket: VariantBucket) -> VariantBucket:
    bucket.condition_description = condition_description(bucket.condition)
    bucket.sku = variant_sku(spec, bucket.color, bucket.condition, bucket.keyboard_layout)
    bucket.price = variant_price(spec, bucket.condition)
    bucket.compare_at_price = compare_at_price(spec, bucket.condition)
    return bucket


def apply_content(group: ProductGroup) -> ProductGroup:
    """(Re)compute every generated field of a group from its spec and buckets."""
    spec = group.spec
    for bucket in group.variants.values():
        decorate_bucket(spec, bucket)
    group.seo_title = generate_title(spec)
    group.seo_handle = generate_handle(spec)
    group.seo_description = seo_description(spec, group.variants)
    group.product_description = product_description(DescriptionInput.from_spec(spec, group.variants))
    group.base_price = base_price(spec)
    group.retail_price = retail_price(spec)
    group.collections = collections(spec)
    group.tags = tags(spec, group.variants)
    return group
