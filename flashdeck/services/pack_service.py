# flashdeck/services/pack_service.py
from typing import List, Optional

from flashdeck.schemas.pack import Pack, PackCreate, PackCreateRequest, PackUpdate
from flashdeck.schemas.user import User
from flashdeck.storage.base import Storage


def can_manage(user: Optional[User], pack: Pack) -> bool:
    """
    admin: every pack
    teacher: packs of their own subject
    """
    if user is None:
        return False
    if user.role == "admin":
        return True
    return user.role == "teacher" and user.subject is not None and pack.subject == user.subject


def can_view(user: Optional[User], pack: Pack) -> bool:
    if pack.is_deleted:
        # the trash is only visible to whoever can restore from it
        return can_manage(user, pack)
    return pack.published or can_manage(user, pack)


def list_visible_packs(storage: Storage, user: Optional[User]) -> List[Pack]:
    """
    公开列表：学生和匿名用户只看已发布的
    老师额外看到自己科目的草稿
    """
    if user is not None and user.role == "admin":
        return storage.get_all_packs()
    return [p for p in storage.get_all_packs() if can_view(user, p)]


def list_deleted_packs(storage: Storage, user: User) -> List[Pack]:
    if user.role == "admin":
        return storage.get_deleted_packs()
    if user.role == "teacher" and user.subject:
        return storage.get_deleted_packs_by_subject(user.subject)
    return []


def next_pack_order(storage: Storage) -> int:
    packs = storage.get_all_packs()
    return max(p.order for p in packs) + 1 if packs else 0


def create_pack(storage: Storage, *, author: User, obj_in: PackCreateRequest) -> Pack:
    """
    A teacher always creates in their own subject; the caller has already
    checked that an admin supplied one.
    """
    subject = author.subject if author.role == "teacher" else obj_in.subject
    order = obj_in.order if obj_in.order is not None else next_pack_order(storage)
    return storage.create_pack(
        PackCreate(
            title=obj_in.title,
            description=obj_in.description,
            subject=subject,
            published=obj_in.published,
            order=order,
            created_by_user_id=author.id,
        )
    )


def reorder_moves(items: list, index: int, direction: str) -> list:
    """
    New orders after moving items[index] one step up or down, as
    [(item, new_order)] for the items that change; [] when already at that end.
    Distinct orders are swapped. If any orders tie, the list is renumbered
    by position instead, so the item moves exactly one place.
    """
    target = index - 1 if direction == "up" else index + 1
    if target < 0 or target >= len(items):
        return []
    item, neighbour = items[index], items[target]
    if len({i.order for i in items}) == len(items):
        return [(item, neighbour.order), (neighbour, item.order)]
    moved = list(items)
    moved[index], moved[target] = neighbour, item
    return [(i, position) for position, i in enumerate(moved) if i.order != position]


def move_pack(storage: Storage, *, pack: Pack, direction: str) -> List[Pack]:
    """
    Swap order with the adjacent active pack of the same subject.
    Returns the packs that changed (empty when already first/last).
    """
    siblings = [p for p in storage.get_all_packs() if p.subject == pack.subject]
    index = next((i for i, p in enumerate(siblings) if p.id == pack.id), None)
    if index is None:
        return []
    changed = [
        storage.update_pack(p.id, PackUpdate(order=order))
        for p, order in reorder_moves(siblings, index, direction)
    ]
    return [p for p in changed if p is not None]
