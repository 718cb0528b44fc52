"""Field usage analysis: which attributes listings actually fill, and with what."""
import csv
import io
import json
import logging
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from listingwatch.connectors.catalog import CatalogSource
from listingwatch.core.config import settings
from listingwatch.services.catalog_scanner import iter_catalog
from listingwatch.services.criteria_matcher import AttachmentDetector

logger = logging.getLogger(__name__)

MAX_SAMPLE_VALUES = 5

CSV_HEADER = ["Field Name", "Usage Count", "Null Count", "Fill Rate (%)", "Categories", "Data Types"]


def _data_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "double"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


class FieldAnalyzer:
    """
    Walks listings (any status by default) and aggregates per-field stats.
    The scan stops after max_pages pages (FIELD_SCAN_MAX_PAGES by default).
    """

    def __init__(
        self,
        catalog: CatalogSource,
        is_attachment: Optional[AttachmentDetector] = None,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
    ):
        self.catalog = catalog
        self.is_attachment = is_attachment or AttachmentDetector()
        self.page_size = page_size or settings.catalog_page_size
        self.max_pages = max_pages if max_pages is not None else settings.field_scan_max_pages

    def _track(self, fields: Mapping[str, Any], usage: dict[str, dict[str, Any]], category: str, prefix: str = "") -> None:
        for name, value in fields.items():
            full_name = f"{prefix}.{name}" if prefix else str(name)
            stats = usage.setdefault(full_name, {
                "count": 0,
                "null_count": 0,
                "categories": [],
                "data_types": [],
                "sample_values": [],
            })
            stats["count"] += 1
            if category not in stats["categories"]:
                stats["categories"].append(category)

            if value is None or value == "":
                stats["null_count"] += 1
                continue

            data_type = _data_type(value)
            if data_type not in stats["data_types"]:
                stats["data_types"].append(data_type)
            if len(stats["sample_values"]) < MAX_SAMPLE_VALUES:
                stats["sample_values"].append(value)

            if isinstance(value, Mapping) and not self.is_attachment(value):
                self._track(value, usage, category, full_name)

    def analyze(
        self,
        categories: Optional[Sequence[str]] = None,
        status: Optional[str] = None,
        fields_filter: Optional[Sequence[str]] = None,
    ) -> dict[str, Any]:
        results: dict[str, Any] = {
            "total_posts": 0,
            "empty_attributes_count": 0,
            "category_breakdown": {},
            "field_usage": [],
            "date_range": {"earliest": None, "latest": None},
        }
        usage: dict[str, dict[str, Any]] = {}

        for record in iter_catalog(self.catalog, categories, status, self.page_size, self.max_pages):
            results["total_posts"] += 1
            category = record.category or "uncategorized"
            breakdown = results["category_breakdown"]
            breakdown[category] = breakdown.get(category, 0) + 1

            if record.published_at is not None:
                stamp = record.published_at.isoformat()
                date_range = results["date_range"]
                if date_range["earliest"] is None or stamp < date_range["earliest"]:
                    date_range["earliest"] = stamp
                if date_range["latest"] is None or stamp > date_range["latest"]:
                    date_range["latest"] = stamp

            attributes = record.attributes or {}
            if fields_filter is not None:
                attributes = {k: attributes[k] for k in fields_filter if k in attributes}
            if not attributes:
                results["empty_attributes_count"] += 1
                continue
            self._track(attributes, usage, category)

        results["field_usage"] = format_field_usage(usage)
        logger.info(
            "Field analysis: %d listings, %d fields", results["total_posts"], len(results["field_usage"])
        )
        return results


def format_field_usage(usage: Mapping[str, Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Flatten usage stats into rows sorted by usage count, most used first."""
    rows = []
    for name, data in usage.items():
        count = data["count"]
        fill_rate = round((count - data["null_count"]) / count * 100, 1) if count else 0
        rows.append({
            "field_name": name,
            "count": count,
            "null_count": data["null_count"],
            "fill_rate": fill_rate,
            "categories": list(data["categories"]),
            "data_types": list(data["data_types"]),
            "sample_values": list(data["sample_values"]),
        })
    rows.sort(key=lambda row: row["count"], reverse=True)
    return rows


def export_json(results: Mapping[str, Any]) -> str:
    return json.dumps(results, indent=4, ensure_ascii=False, default=str)


def export_csv(results: Mapping[str, Any]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for row in results.get("field_usage", []):
        writer.writerow([
            row["field_name"],
            row["count"],
            row["null_count"],
            row["fill_rate"],
            ", ".join(row["categories"]),
            ", ".join(row["data_types"]),
        ])
    return buffer.getvalue()
