# refurb_hub/services/grouping.py
"""
Grouping and variant aggregation.

rows -> classify -> group key -> fold each unit into its group's variant
bucket -> decorate groups with generated content.
"""
from __future__ import annotations
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from refurb_hub.domain import (
    GROUP_KEY_FIELDS, GroupingResult, ProductGroup, ProductSpec, RejectedRow,
    StockItem, VariantBucket, conservation_problem, variant_key,
)
from refurb_hub.services import classifier, content
from refurb_hub.services.rows import RawRow, to_raw_row

logger = logging.getLogger(__name__)

MAX_REJECTED_SAMPLES = 10


def group_key(spec: ProductSpec) -> str:
    """Stable key from the non-variant spec fields; empty fields are left out."""
    parts = [getattr(spec, f) for f in GROUP_KEY_FIELDS]
    return re.sub(r"[^A-Za-z0-9_]", "", "_".join(p for p in parts if p))


def stock_item(row: RawRow) -> StockItem:
    return StockItem(
        stock_id=row.stock_id,
        serial_number=row.serial_number,
        color=classifier.clean_color(row.color),
        condition=classifier.clean_condition(row.condition),
        keyboard_layout=classifier.keyboard_layout(row),
        comments=row.comments,
    )


def new_group(key: str, spec: ProductSpec) -> ProductGroup:
    return ProductGroup(key=key, **spec.model_dump())


def aggregate(groups: Dict[str, ProductGroup], spec: ProductSpec, item: StockItem) -> ProductGroup:
    """Fold one unit into groups[key].variants[color|condition|keyboard]."""
    key = group_key(spec)
    group = groups.get(key)
    if group is None:
        group = groups[key] = new_group(key, spec)
        logger.debug("New product group %s", key)

    vkey = variant_key(item.color, item.condition, item.keyboard_layout)
    bucket = group.variants.get(vkey)
    if bucket is None:
        bucket = group.variants[vkey] = content.decorate_bucket(
            spec,
            VariantBucket(color=item.color, condition=item.condition, keyboard_layout=item.keyboard_layout),
        )
    bucket.add(item)
    group.stock_items.append(item)
    group.total_units += 1
    return group


def check_conservation(group: ProductGroup) -> None:
    problem = conservation_problem(group)
    if problem:
        raise ValueError(problem)


def _rejected(row: RawRow, reason: str) -> RejectedRow:
    return RejectedRow(
        row_number=row.row_number,
        model=row.model,
        category=row.category,
        processor=row.processor,
        reason=reason,
    )


def build_product_groups(
    rows: Iterable[Union[RawRow, Mapping[str, Any]]],
    max_samples: int = MAX_REJECTED_SAMPLES,
) -> GroupingResult:
    """Classify and aggregate every row; unrecognized rows are counted, never fatal."""
    groups: Dict[str, ProductGroup] = {}
    categories: Dict[str, int] = {}
    rejected: List[RejectedRow] = []
    rejected_count = 0
    total = 0

    for index, row in enumerate(rows, start=1):
        raw = row if isinstance(row, RawRow) else to_raw_row(row, row_number=index)
        total += 1
        reason: Optional[str] = None
        try:
            spec = classifier.classify(raw)
            if spec is None:
                reason = "unrecognized product"
            else:
                aggregate(groups, spec, stock_item(raw))
                categories[spec.product_type] = categories.get(spec.product_type, 0) + 1
        except Exception as e:
            logger.exception("Row %d (stock %s) failed to process", raw.row_number, raw.stock_id or "N/A")
            reason = f"error: {e}"

        if reason:
            rejected_count += 1
            if len(rejected) < max_samples:
                rejected.append(_rejected(raw, reason))
            logger.info("Skipping row %d: %s (%s)", raw.row_number, reason, raw.model or "no model")

    now = datetime.now(timezone.utc)
    for group in groups.values():
        content.apply_content(group)
        group.last_updated = now
        check_conservation(group)

    total_units = sum(g.total_units for g in groups.values())
    logger.info(
        "Grouped %d rows into %d product groups (%d units, %d rejected)",
        total, len(groups), total_units, rejected_count,
    )
    return GroupingResult(
        product_groups=groups,
        categories=categories,
        total_items=total,
        group_count=len(groups),
        total_unique_units=total_units,
        rejected_count=rejected_count,
        rejected_samples=rejected,
    )
