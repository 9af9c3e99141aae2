# acadlib/api/v1/endpoints/requests.py
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Request, status
from loguru import logger

from acadlib.api.deps import get_material_repository, get_request_repository, get_user_repository
from acadlib.core.errors import InvalidRequestError, NotFoundError
from acadlib.core.rate_limiter import limiter
from acadlib.core.security import get_current_user, require_elevated
from acadlib.core.utils import to_object_id
from acadlib.db.repositories import MaterialRepository, RequestRepository, UserRepository
from acadlib.models.enum import RequestStatus
from acadlib.models.request import MaterialRequest, RequestList
from acadlib.models.user import CurrentUser, UserSummary

router = APIRouter(prefix="/requests", tags=["Material Requests"])


async def attach_requesters(
    requests: List[MaterialRequest.Response], users: UserRepository
) -> List[MaterialRequest.Response]:
    if not requests:
        return requests
    found = await users.get_many([r.requested_by for r in requests])
    by_id = {u.id: UserSummary(id=u.id, name=u.name, email=u.email) for u in found}
    return [r.model_copy(update={"requester": by_id.get(r.requested_by)}) for r in requests]


@router.post("", response_model=MaterialRequest.Response, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/hour")
async def submit_request(
    request: Request,
    request_in: MaterialRequest.Create = Body(...),
    current_user: CurrentUser = Depends(get_current_user),
    requests: RequestRepository = Depends(get_request_repository),
):
    data = request_in.model_dump()
    data["requested_by"] = current_user.id
    created = await requests.create(data)
    logger.info(f"User '{current_user.email}' submitted request '{created.title}' ({created.id}).")
    return created


@router.get("/my", response_model=RequestList)
async def get_my_requests(
    current_user: CurrentUser = Depends(get_current_user),
    requests: RequestRepository = Depends(get_request_repository),
):
    found = await requests.list(requested_by=current_user.id)
    return RequestList(count=len(found), data=found)


@router.get("", response_model=RequestList, dependencies=[Depends(require_elevated)])
async def get_all_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    requests: RequestRepository = Depends(get_request_repository),
    users: UserRepository = Depends(get_user_repository),
):
    found = await requests.list(status=status_filter.value if status_filter else None)
    found = await attach_requesters(found, users)
    return RequestList(count=len(found), data=found)


@router.patch("/{request_id}/status", response_model=MaterialRequest.Response)
async def update_request_status(
    request_id: str = Path(...),
    update_in: MaterialRequest.StatusUpdate = Body(...),
    current_user: CurrentUser = Depends(require_elevated),
    requests: RequestRepository = Depends(get_request_repository),
    materials: MaterialRepository = Depends(get_material_repository),
    users: UserRepository = Depends(get_user_repository),
):
    request_id = str(to_object_id(request_id, "request ID"))
    existing = await requests.get(request_id)
    if existing is None:
        raise NotFoundError("Request not found.", {"request_id": request_id})

    changes = {"status": update_in.status}
    if update_in.action_notes is not None:
        changes["action_notes"] = update_in.action_notes.strip() or None
    if update_in.fulfilled_material_id:
        if update_in.status != RequestStatus.FULFILLED.value:
            raise InvalidRequestError(
                "A fulfilled material can only be set when the status is 'fulfilled'.",
                {"request_id": request_id},
            )
        material_id = str(to_object_id(update_in.fulfilled_material_id, "material ID"))
        if await materials.get(material_id) is None:
            raise NotFoundError("Fulfilled material not found.", {"material_id": material_id})
        changes["fulfilled_material_id"] = material_id

    updated = await requests.update(request_id, changes)
    if updated is None:
        raise NotFoundError("Request not found.", {"request_id": request_id})
    logger.info(
        f"User '{current_user.email}' moved request {request_id} from '{existing.status}' to '{updated.status}'."
    )
    return (await attach_requesters([updated], users))[0]
