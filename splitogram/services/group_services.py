import logging
import secrets

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from splitogram.core.dependencies import check_group_membership
from splitogram.core.errors import AlreadyMember, NotFound
from splitogram.models.group import Group
from splitogram.models.group_member import GroupMember
from splitogram.models.user import User
from splitogram.services.ledger import compute_user_net_balance

logger = logging.getLogger(__name__)

# no 0/O, 1/l/I
INVITE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
INVITE_CODE_LENGTH = 8


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


async def _member_count(db: AsyncSession, group_id: int) -> int:
    q = select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id)
    return (await db.execute(q)).scalar_one()


async def create_group(db: AsyncSession, name: str, creator_id: int):
    group = Group(name=name, invite_code=generate_invite_code(), created_by=creator_id)
    db.add(group)
    await db.flush()

    member = GroupMember(group_id=group.id, user_id=creator_id, role="admin")
    db.add(member)

    await db.commit()
    await db.refresh(group)
    logger.info("Group %s created by user %s", group.id, creator_id)
    return group


async def list_group_for_user(db: AsyncSession, user_id: int):
    q = (
        select(Group, GroupMember.role)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .order_by(Group.created_at.desc(), Group.id.desc())
    )
    rows = (await db.execute(q)).all()

    result = []
    for group, role in rows:
        result.append({
            "id": group.id,
            "name": group.name,
            "invite_code": group.invite_code,
            "created_by": group.created_by,
            "created_at": group.created_at,
            "role": role,
            "member_count": await _member_count(db, group.id),
            # positive = owed to user, negative = user owes
            "net_balance": await compute_user_net_balance(db, group.id, user_id),
        })
    return result


async def get_group_detail(db: AsyncSession, group_id: int, user_id: int):
    await check_group_membership(db, group_id, user_id)
    group = await db.get(Group, group_id)

    q = (
        select(
            User.id.label("user_id"),
            User.telegram_id,
            User.username,
            User.display_name,
            User.wallet_address,
            GroupMember.role,
            GroupMember.joined_at,
        )
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.id)
    )
    members = [dict(row._mapping) for row in await db.execute(q)]

    return {
        "id": group.id,
        "name": group.name,
        "invite_code": group.invite_code,
        "created_by": group.created_by,
        "created_at": group.created_at,
        "members": members,
    }


async def resolve_invite(db: AsyncSession, invite_code: str):
    q = select(Group).where(Group.invite_code == invite_code)
    group = (await db.execute(q)).scalar_one_or_none()

    if not group:
        raise NotFound("This invite link is no longer valid")

    return {
        "id": group.id,
        "name": group.name,
        "member_count": await _member_count(db, group.id),
    }


async def join_group(db: AsyncSession, group_id: int, invite_code: str, user_id: int):
    q = select(Group).where(Group.id == group_id, Group.invite_code == invite_code)
    group = (await db.execute(q)).scalar_one_or_none()

    if not group:
        raise NotFound("Invalid invite code for this group")

    q_member = select(GroupMember).where(
        GroupMember.group_id == group_id,
        GroupMember.user_id == user_id
    )
    if (await db.execute(q_member)).scalar_one_or_none():
        raise AlreadyMember("You are already a member of this group")

    db.add(GroupMember(group_id=group_id, user_id=user_id, role="member"))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AlreadyMember("You are already a member of this group")

    logger.info("User %s joined group %s", user_id, group_id)
    return group
