from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from splitogram.core.dependencies import get_current_user, get_db, get_notifier
from splitogram.schemas.group import GroupCreate, GroupDetail, GroupJoin, GroupOut, GroupSummary, InviteInfo, JoinResult
from splitogram.services.group_services import create_group, get_group_detail, join_group, list_group_for_user, resolve_invite
from splitogram.services.notifications import load_group_members, load_notify_users

router = APIRouter()

@router.post("/", response_model=GroupOut, status_code=201)
async def create_new_group(
    data: GroupCreate,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user)
):
    return await create_group(db, data.name, user.id)

@router.get("/", response_model=list[GroupSummary])
async def my_groups(db: AsyncSession = Depends(get_db), user = Depends(get_current_user)):
    return await list_group_for_user(db, user.id)

# public, no auth needed to look at an invite
@router.get("/join/{invite_code}", response_model=InviteInfo)
async def invite_info(invite_code: str, db: AsyncSession = Depends(get_db)):
    return await resolve_invite(db, invite_code)

@router.get("/{group_id}", response_model=GroupDetail)
async def group_detail(group_id: int, db: AsyncSession = Depends(get_db), user = Depends(get_current_user)):
    return await get_group_detail(db, group_id, user.id)

@router.post("/{group_id}/join", response_model=JoinResult)
async def join(
    group_id: int,
    data: GroupJoin,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user),
    notifier = Depends(get_notifier),
):
    group = await join_group(db, group_id, data.invite_code, user.id)

    if notifier:
        [new_member] = await load_notify_users(db, [user.id])
        existing = await load_group_members(db, group_id)
        background_tasks.add_task(notifier.member_joined, new_member, existing, group.name)

    return {"joined": True, "group_id": group.id, "group_name": group.name}
