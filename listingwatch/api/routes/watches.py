"""Watch endpoints: create, list, rename, run, preview, delete (users and guests)."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from listingwatch.api.deps import get_runner, http_error
from listingwatch.api.schemas.watch import (
    MatchEventRead,
    NewCountResponse,
    RunResponse,
    WatchCreate,
    WatchCreated,
    WatchListResponse,
    WatchRead,
    WatchUpdate,
)
from listingwatch.core.auth import get_optional_owner, get_owner, rate_limit_public
from listingwatch.core.exceptions import ListingWatchError
from listingwatch.db.session import get_db
from listingwatch.services.owner import Owner
from listingwatch.services.watch_runner import WatchRunner
from listingwatch.services.watch_store import WatchStore

router = APIRouter(prefix="/watches", tags=["watches"], dependencies=[Depends(rate_limit_public)])


@router.post("", response_model=WatchCreated, status_code=201)
async def post_watch(
    body: WatchCreate,
    request: Request,
    owner: Optional[Owner] = Depends(get_optional_owner),
    runner: WatchRunner = Depends(get_runner),
) -> WatchCreated:
    """Create a watch. Without a Bearer token, guest_email makes it a guest watch."""
    if owner is None or owner.is_guest:
        if not body.guest_email:
            raise HTTPException(status_code=401, detail="Authenticate or provide guest_email")
        owner = Owner.guest(str(body.guest_email))
    try:
        watch = runner.create(
            owner,
            name=body.name,
            category=body.category,
            criteria=[c.model_dump() for c in body.criteria],
            created_by_ip=request.client.host if request.client else None,
        )
    except ListingWatchError as e:
        raise http_error(e)
    read = WatchRead.from_watch(watch)
    return WatchCreated(**read.model_dump(), deletion_token=watch.deletion_token)


@router.get("", response_model=WatchListResponse)
async def get_watches(
    owner: Owner = Depends(get_owner),
    runner: WatchRunner = Depends(get_runner),
) -> WatchListResponse:
    """List the caller's watches."""
    watches = runner.list_watches(owner)
    return WatchListResponse(total=len(watches), items=[WatchRead.from_watch(w) for w in watches])


@router.delete("/by-token/{token}", status_code=204)
async def delete_watch_by_token(
    token: str,
    runner: WatchRunner = Depends(get_runner),
) -> None:
    """Unsubscribe link for guests: the token alone authorizes deletion."""
    if not runner.delete_by_token(token):
        raise HTTPException(status_code=404, detail="Watch not found")


@router.get("/{watch_id}", response_model=WatchRead)
async def get_watch(
    watch_id: str,
    owner: Owner = Depends(get_owner),
    runner: WatchRunner = Depends(get_runner),
) -> WatchRead:
    try:
        watch = runner.store.get_owned(watch_id, owner)
    except ListingWatchError as e:
        raise http_error(e)
    return WatchRead.from_watch(watch)


@router.patch("/{watch_id}", response_model=WatchRead)
async def patch_watch(
    watch_id: str,
    body: WatchUpdate,
    owner: Owner = Depends(get_owner),
    runner: WatchRunner = Depends(get_runner),
) -> WatchRead:
    """Rename a watch (owner only)."""
    try:
        watch = runner.rename(watch_id, owner, body.name)
    except ListingWatchError as e:
        raise http_error(e)
    return WatchRead.from_watch(watch)


@router.post("/{watch_id}/run", response_model=RunResponse)
async def run_watch(
    watch_id: str,
    owner: Owner = Depends(get_owner),
    runner: WatchRunner = Depends(get_runner),
) -> RunResponse:
    """Run now and return only listings not reported before."""
    try:
        result = runner.run(watch_id, owner)
    except ListingWatchError as e:
        raise http_error(e)
    return RunResponse(**result.to_dict())


@router.get("/{watch_id}/new-count", response_model=NewCountResponse)
async def get_new_count(
    watch_id: str,
    owner: Owner = Depends(get_owner),
    runner: WatchRunner = Depends(get_runner),
) -> NewCountResponse:
    """How many new listings a run would report, without marking them seen."""
    try:
        count = runner.count_new(watch_id, owner)
    except ListingWatchError as e:
        raise http_error(e)
    return NewCountResponse(watch_id=watch_id, new_count=count)


@router.get("/{watch_id}/matches", response_model=list[MatchEventRead])
async def get_watch_matches(
    watch_id: str,
    limit: int = Query(50, ge=1, le=500),
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
) -> list[MatchEventRead]:
    store = WatchStore(db)
    try:
        store.get_owned(watch_id, owner)
    except ListingWatchError as e:
        raise http_error(e)
    return [MatchEventRead.model_validate(m) for m in store.list_matches(watch_id, limit=limit)]


@router.delete("/{watch_id}", status_code=204)
async def delete_watch(
    watch_id: str,
    owner: Owner = Depends(get_owner),
    runner: WatchRunner = Depends(get_runner),
) -> None:
    """Delete a watch (owner only)."""
    if not runner.delete(watch_id, owner):
        raise HTTPException(status_code=404, detail="Watch not found")
