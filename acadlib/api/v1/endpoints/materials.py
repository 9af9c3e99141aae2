# acadlib/api/v1/endpoints/materials.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Path, Query, Request, UploadFile, status
from fastapi.responses import FileResponse
from loguru import logger
from pydantic import ValidationError

from acadlib.api.deps import (
    get_blob_store,
    get_booking_repository,
    get_inventory_engine,
    get_material_repository,
)
from acadlib.core.errors import InvalidRequestError, NotFoundError
from acadlib.core.inventory import InventoryEngine
from acadlib.core.query import MaterialSearchParams, build_pagination, compose_material_query
from acadlib.core.rate_limiter import limiter
from acadlib.core.security import get_current_user, require_elevated
from acadlib.core.storage import BlobStore
from acadlib.core.utils import to_object_id
from acadlib.db.repositories import BookingRepository, MaterialRepository
from acadlib.models.enum import MaterialType
from acadlib.models.material import Material, MaterialPage
from acadlib.models.user import CurrentUser, UserRole

router = APIRouter(prefix="/materials", tags=["Materials"])


async def get_material_or_404(materials: MaterialRepository, material_id: str) -> Material.Response:
    material = await materials.get(str(to_object_id(material_id, "material ID")))
    if material is None:
        raise NotFoundError("Material not found.", {"material_id": material_id})
    return material


@router.get("", response_model=MaterialPage)
async def list_materials(
    keyword: Optional[str] = Query(None, description="Free text matched against title, description, keywords, authors and category"),
    category: Optional[str] = Query(None),
    material_type: Optional[MaterialType] = Query(None, alias="materialType"),
    publication_year: Optional[int] = Query(None, alias="publicationYear"),
    is_physical: Optional[bool] = Query(None, alias="isPhysical"),
    available_only: bool = Query(False, alias="availableOnly"),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    sort: Optional[str] = Query(None, description="Comma separated fields, '-' prefix for descending"),
    materials: MaterialRepository = Depends(get_material_repository),
):
    query = compose_material_query(
        MaterialSearchParams(
            keyword=keyword,
            category=category,
            material_type=material_type,
            publication_year=publication_year,
            is_physical=is_physical,
            available_only=available_only,
            page=page,
            limit=limit,
            sort=sort,
        )
    )
    logger.debug(f"Material search filter={query.filter} sort={query.sort} skip={query.skip} limit={query.limit}")
    total = await materials.count(query.filter)
    found = await materials.search(query.filter, query.sort, query.skip, query.limit)
    return MaterialPage(
        count=len(found),
        pagination=build_pagination(total, query.page, query.limit),
        data=found,
    )


@router.get("/{material_id}", response_model=Material.Response)
async def get_material(
    material_id: str = Path(...),
    materials: MaterialRepository = Depends(get_material_repository),
):
    return await get_material_or_404(materials, material_id)


@router.get("/{material_id}/file")
async def download_material_file(
    material_id: str = Path(...),
    materials: MaterialRepository = Depends(get_material_repository),
    store: BlobStore = Depends(get_blob_store),
):
    material = await get_material_or_404(materials, material_id)
    if not material.file_path or not store.exists(material.file_path):
        logger.error(f"Stored file '{material.file_path}' missing for material {material.id}.")
        raise NotFoundError("File not found for this material.", {"material_id": material.id})
    return FileResponse(
        store.path_for(material.file_path),
        media_type=material.file_mime_type,
        filename=material.file_name,
    )


@router.post("/upload", response_model=Material.Response, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/hour")
async def upload_material(
    request: Request,
    title: str = Form(...),
    authors: Optional[str] = Form(None),
    publication_year: Optional[int] = Form(None, alias="publicationYear"),
    material_type: MaterialType = Form(MaterialType.OTHER, alias="materialType"),
    keywords: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    is_physical: bool = Form(False, alias="isPhysical"),
    total_copies: int = Form(0, alias="totalCopies"),
    material_file: UploadFile = File(..., alias="materialFile"),
    current_user: CurrentUser = Depends(require_elevated),
    materials: MaterialRepository = Depends(get_material_repository),
    store: BlobStore = Depends(get_blob_store),
):
    """Stores the file, then the metadata record; the file is removed again if the record fails."""
    try:
        metadata = Material.Create(
            title=title,
            authors=authors,
            publication_year=publication_year,
            material_type=material_type,
            keywords=keywords,
            category=category,
            description=description,
            is_physical=is_physical,
            total_copies=total_copies,
        )
    except ValidationError as e:
        first = e.errors()[0]
        raise InvalidRequestError(first.get("msg", "Invalid material metadata."), {"errors": str(e)}) from e

    stored_name = await store.save(material_file)
    data = metadata.model_dump()
    data.update(
        uploaded_by=current_user.id,
        file_name=material_file.filename,
        file_path=stored_name,
        file_mime_type=material_file.content_type,
        available_copies=metadata.total_copies,
    )
    try:
        created = await materials.create(data)
    except Exception:
        logger.error(f"Saving material metadata failed, removing stored file {stored_name}.")
        await store.delete(stored_name)
        raise
    logger.info(f"User '{current_user.email}' uploaded material '{created.title}' ({created.id}).")
    return created


@router.patch("/{material_id}/inventory", response_model=Material.Response)
async def update_material_inventory(
    material_id: str = Path(...),
    inventory_in: Material.InventoryUpdate = Body(...),
    current_user: CurrentUser = Depends(require_elevated),
    engine: InventoryEngine = Depends(get_inventory_engine),
):
    material_id = str(to_object_id(material_id, "material ID"))
    logger.info(f"User '{current_user.email}' adjusting inventory of {material_id} to {inventory_in.total_copies}.")
    return await engine.adjust_inventory(
        material_id, inventory_in.total_copies, is_physical=inventory_in.is_physical
    )


@router.delete("/{material_id}", response_model=Material.Response)
async def delete_material(
    material_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    materials: MaterialRepository = Depends(get_material_repository),
    bookings: BookingRepository = Depends(get_booking_repository),
    store: BlobStore = Depends(get_blob_store),
):
    material = await get_material_or_404(materials, material_id)
    if material.uploaded_by != current_user.id and current_user.role != UserRole.ADMIN.value:
        logger.warning(f"User '{current_user.email}' attempted to delete material {material.id} they do not own.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User not authorized to delete this material",
        )
    open_loans = await bookings.count_open_for_material(material.id)
    if open_loans:
        raise InvalidRequestError(
            f"Cannot delete material: {open_loans} copies are currently on loan.",
            {"material_id": material.id, "open_loans": open_loans},
        )

    deleted = await materials.delete(material.id)
    if deleted is None:
        raise NotFoundError("Material not found.", {"material_id": material.id})
    if deleted.file_path and not await store.delete(deleted.file_path):
        logger.warning(f"Stored file '{deleted.file_path}' was already missing for material {deleted.id}.")
    logger.info(f"User '{current_user.email}' deleted material '{deleted.title}' ({deleted.id}).")
    return deleted
