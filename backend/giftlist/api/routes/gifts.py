import logging

from fastapi import APIRouter, Depends, Request, status

from giftlist.api.deps import AdminVerdictDep, DbSessionDep, RequireAdminDep, get_known_visitor_id
from giftlist.core.audit import AuditAction, audit_gift_action
from giftlist.core.media import delete_media_file
from giftlist.schemas.gift import DeleteResponse, GiftCreate, GiftPublic, GiftUpdate
from giftlist.services import catalog


router = APIRouter(prefix="/gifts", tags=["gifts"])
logger = logging.getLogger("giftlist.catalog")


@router.get("", response_model=list[GiftPublic])
async def list_gifts(
    db: DbSessionDep,
    admin: AdminVerdictDep,
    visitor_id: str | None = Depends(get_known_visitor_id),
) -> list[GiftPublic]:
    return await catalog.list_gifts_for_viewer(db, visitor_id, admin.is_admin)


@router.get("/{gift_id}", response_model=GiftPublic)
async def get_gift(
    gift_id: int,
    db: DbSessionDep,
    admin: AdminVerdictDep,
    visitor_id: str | None = Depends(get_known_visitor_id),
) -> GiftPublic:
    return await catalog.get_gift_for_viewer(db, gift_id, visitor_id, admin.is_admin)


@router.post("", response_model=GiftPublic, status_code=status.HTTP_201_CREATED)
async def create_gift(
    payload: GiftCreate,
    request: Request,
    db: DbSessionDep,
    admin: RequireAdminDep,
) -> GiftPublic:
    gift = await catalog.create_gift(db, payload)
    audit_gift_action(AuditAction.GIFT_CREATE, request, admin.identity, gift.id, {"title": gift.title})
    return catalog.serialize_gift(gift, None, None, is_admin=True)


@router.put("/{gift_id}", response_model=GiftPublic)
async def update_gift(
    gift_id: int,
    payload: GiftUpdate,
    request: Request,
    db: DbSessionDep,
    admin: RequireAdminDep,
) -> GiftPublic:
    fields = payload.model_dump(exclude_unset=True)
    previous_image = None
    if "image_url" in fields:
        previous_image = (await catalog.get_gift(db, gift_id)).image_url

    gift = await catalog.update_gift(db, gift_id, fields)
    if previous_image and previous_image != gift.image_url:
        delete_media_file(previous_image)

    audit_gift_action(AuditAction.GIFT_UPDATE, request, admin.identity, gift.id, {"fields": sorted(fields)})
    return await catalog.get_gift_for_viewer(db, gift.id, None, is_admin=True)


@router.delete("/{gift_id}", response_model=DeleteResponse)
async def delete_gift(
    gift_id: int,
    request: Request,
    db: DbSessionDep,
    admin: RequireAdminDep,
) -> DeleteResponse:
    gift = await catalog.delete_gift(db, gift_id)
    if gift.image_url:
        delete_media_file(gift.image_url)
    audit_gift_action(AuditAction.GIFT_DELETE, request, admin.identity, gift_id, {"title": gift.title})
    return DeleteResponse()
