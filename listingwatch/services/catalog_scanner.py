"""Catalog scanner: page through published listings and yield the ones matching criteria."""
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

from listingwatch.connectors.catalog import CatalogSource, ListingRecord
from listingwatch.core.config import settings
from listingwatch.core.exceptions import TransientScanFailure
from listingwatch.services.criteria import InvalidCriterion, WordSearch
from listingwatch.services.criteria_matcher import (
    LOGIC_AND,
    AttachmentDetector,
    CriteriaMatcher,
    MatchResult,
    collect_field_names,
)

logger = logging.getLogger(__name__)

LOGIC_ALL = "ALL"


@dataclass
class ScanMatch:
    listing: ListingRecord
    result: MatchResult

    def to_dict(self, debug: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.listing.id,
            "title": self.listing.title,
            "url": self.listing.url,
            "category": self.listing.category,
            "attributes": self.listing.attributes,
        }
        if debug:
            data["matched_criteria"] = [o.to_dict() for o in self.result.per_criterion]
        return data


@dataclass
class SearchResult:
    posts: list[dict[str, Any]]
    total_found: int
    criteria: dict[str, Any]
    match_logic: str
    debug: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "posts": self.posts,
            "total_found": self.total_found,
            "criteria": self.criteria,
            "match_logic": self.match_logic,
            "debug": self.debug,
        }


def _serializable_criteria(criteria: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in criteria.items():
        if isinstance(value, WordSearch):
            out[key] = {"word_search": list(value.terms)}
        elif isinstance(value, InvalidCriterion):
            out[key] = {"invalid": value.reason}
        else:
            out[key] = value
    return out


def iter_catalog(
    catalog: CatalogSource,
    categories: Optional[Sequence[str]],
    status: Optional[str],
    page_size: int,
    max_pages: Optional[int] = None,
) -> Iterator[ListingRecord]:
    """Page through the catalog until an empty page or max_pages. Source errors become TransientScanFailure."""
    page = 1
    while max_pages is None or page <= max_pages:
        try:
            records = catalog.fetch_page(categories, status, page, page_size)
        except TransientScanFailure:
            raise
        except Exception as e:
            raise TransientScanFailure(f"Catalog page {page} failed: {e}") from e
        if not records:
            return
        yield from records
        page += 1


class CatalogScanner:
    """
    Scans the catalog page by page. Each call starts from page 1 and stops at
    the first empty page; matching scans have no page ceiling.
    """

    def __init__(
        self,
        catalog: CatalogSource,
        matcher: Optional[CriteriaMatcher] = None,
        page_size: Optional[int] = None,
        status: Optional[str] = None,
    ):
        self.catalog = catalog
        self.matcher = matcher or CriteriaMatcher(AttachmentDetector())
        self.page_size = page_size or settings.catalog_page_size
        self.status = status if status is not None else settings.catalog_published_status

    def _iter_listings(
        self,
        categories: Optional[Sequence[str]],
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> Iterator[ListingRecord]:
        size = page_size or self.page_size
        page = 1
        while max_pages is None or page <= max_pages:
            try:
                records = self.catalog.fetch_page(categories, self.status, page, size)
            except TransientScanFailure:
                raise
            except Exception as e:
                raise TransientScanFailure(f"Catalog page {page} failed: {e}") from e
            if not records:
                return
            yield from records
            page += 1

    def find_matches(
        self,
        criteria: Mapping[str, Any],
        logic: str = LOGIC_AND,
        categories: Optional[Sequence[str]] = None,
        page_size: Optional[int] = None,
    ) -> Iterator[ScanMatch]:
        """Lazily yield listings whose attributes satisfy the flattened criteria."""
        if not criteria:
            return
        for listing in self._iter_listings(categories, page_size):
            result = self.matcher.evaluate(listing.attributes, criteria, logic, title=listing.title)
            if result.matched:
                yield ScanMatch(listing=listing, result=result)

    def list_all(self, categories: Optional[Sequence[str]] = None) -> Iterator[ScanMatch]:
        """Every published listing of the categories, unfiltered."""
        for listing in self._iter_listings(categories):
            yield ScanMatch(listing=listing, result=MatchResult(matched=True))

    def search(
        self,
        criteria: Mapping[str, Any],
        logic: str = LOGIC_AND,
        categories: Optional[Sequence[str]] = None,
        debug: bool = False,
    ) -> SearchResult:
        """Ad-hoc search. logic=ALL ignores criteria and returns every listing."""
        mode = (logic or LOGIC_AND).upper()
        if mode == LOGIC_ALL:
            matches = list(self.list_all(categories))
        else:
            matches = list(self.find_matches(criteria, mode, categories))

        debug_info: dict[str, Any] = {}
        if debug:
            debug_info = {
                "categories": list(categories or []),
                "status": self.status,
                "page_size": self.page_size,
                "criteria_count": len(criteria or {}),
            }
        return SearchResult(
            posts=[m.to_dict(debug=debug) for m in matches],
            total_found=len(matches),
            criteria=_serializable_criteria(criteria or {}),
            match_logic=mode,
            debug=debug_info,
        )

    def collect_field_names(
        self,
        categories: Optional[Sequence[str]] = None,
        max_pages: Optional[int] = None,
        excluded: Optional[Iterable[str]] = None,
    ) -> list[str]:
        """
        Distinct dotted attribute names across the catalog. Bounded by
        FIELD_SCAN_MAX_PAGES; excluded names (and their children) are dropped.
        """
        limit = max_pages if max_pages is not None else settings.field_scan_max_pages
        skip = set(excluded if excluded is not None else settings.field_scan_excluded_list)

        names: set[str] = set()
        for listing in self._iter_listings(categories, max_pages=limit):
            names.update(collect_field_names(listing.attributes, self.matcher.is_attachment))

        kept = [n for n in names if n not in skip and n.split(".", 1)[0] not in skip]
        return sorted(kept)
