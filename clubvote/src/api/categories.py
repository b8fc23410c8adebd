import uuid

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_caller, verify_gateway_secret
from api.schemas import CategoryCreate, CategoryOut, CategoryUpdate
from core.database import get_db
from services.access import Caller
from services.catalog import CategoryCatalog

router = APIRouter(dependencies=[Depends(verify_gateway_secret)])


@router.get("/categories", response_model=list[CategoryOut])
async def list_categories(
    club_id: uuid.UUID = Query(alias="clubId"),
    include_inactive: bool = Query(False, alias="includeInactive"),
):
    async with get_db() as db:
        return await CategoryCatalog(db).list_categories(club_id, include_inactive)


@router.post("/categories", status_code=201, response_model=CategoryOut)
async def create_category(body: CategoryCreate, caller: Caller = Depends(get_caller)):
    async with get_db() as db:
        return await CategoryCatalog(db).create_category(
            caller,
            body.club_id,
            name=body.name,
            description=body.description,
            display_order=body.display_order,
        )


@router.put("/categories", response_model=CategoryOut)
async def update_category(body: CategoryUpdate, caller: Caller = Depends(get_caller)):
    fields = body.model_dump(exclude={"category_id"}, exclude_unset=True)
    async with get_db() as db:
        return await CategoryCatalog(db).update_category(caller, body.category_id, **fields)


@router.delete("/categories", response_model=CategoryOut)
async def delete_category(
    category_id: uuid.UUID = Query(alias="categoryId"),
    caller: Caller = Depends(get_caller),
):
    async with get_db() as db:
        return await CategoryCatalog(db).deactivate_category(caller, category_id)
