"""Ad-hoc search endpoints: try criteria before saving them, list searchable fields."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from listingwatch.api.schemas.search import FieldsResponse, SearchRequest, SearchResponse
from listingwatch.connectors.catalog import build_catalog
from listingwatch.core.auth import rate_limit_public
from listingwatch.core.exceptions import TransientScanFailure
from listingwatch.db.session import get_db
from listingwatch.services.catalog_scanner import CatalogScanner
from listingwatch.services.criteria import flatten_criteria

router = APIRouter(prefix="/search", tags=["search"], dependencies=[Depends(rate_limit_public)])


@router.post("", response_model=SearchResponse)
async def post_search(body: SearchRequest, db: Session = Depends(get_db)) -> SearchResponse:
    """Evaluate criteria against the catalog without saving anything."""
    scanner = CatalogScanner(build_catalog(db))
    flat = flatten_criteria([c.model_dump() for c in body.criteria])
    try:
        result = scanner.search(flat, body.logic, body.categories or None, debug=body.debug)
    except TransientScanFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    return SearchResponse(**result.to_dict())


@router.get("/fields", response_model=FieldsResponse)
async def get_fields(
    category: Optional[list[str]] = Query(None, description="Restrict to these categories"),
    db: Session = Depends(get_db),
) -> FieldsResponse:
    """Attribute names that can be used in criteria."""
    scanner = CatalogScanner(build_catalog(db))
    try:
        fields = scanner.collect_field_names(category)
    except TransientScanFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    return FieldsResponse(categories=category or [], fields=fields)
