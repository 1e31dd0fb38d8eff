# flashdeck/services/account_service.py
from flashdeck.core.security import get_password_hash
from flashdeck.schemas.account_request import AccountRequest, AccountRequestCreate
from flashdeck.schemas.auth import ApproveRequest, SignupRequest
from flashdeck.schemas.user import User
from flashdeck.storage.base import Storage
from flashdeck.storage.errors import AccountRequestNotFoundError, DuplicateUserError


class MissingSubjectError(Exception):
    pass


def submit_signup(storage: Storage, *, obj_in: SignupRequest) -> AccountRequest:
    """
    注册只生成一个待审批的申请，密码先哈希再存
    """
    if storage.get_user_by_name(obj_in.first_name, obj_in.last_name):
        raise DuplicateUserError(obj_in.first_name, obj_in.last_name)

    return storage.create_account_request(
        AccountRequestCreate(
            first_name=obj_in.first_name.strip(),
            last_name=obj_in.last_name.strip(),
            password=get_password_hash(obj_in.password),
            requested_role=obj_in.requested_role,
        )
    )


def approve(storage: Storage, *, request_id: str, obj_in: ApproveRequest) -> User:
    request = storage.get_account_request(request_id)
    if request is None:
        raise AccountRequestNotFoundError(request_id)

    role = obj_in.role or request.requested_role
    subject = obj_in.subject if role == "teacher" else None
    if role == "teacher" and not subject:
        # a teacher without a subject could never manage a pack
        raise MissingSubjectError("a teacher account needs a subject")
    return storage.approve_account_request(
        request_id,
        request.first_name,
        request.last_name,
        request.password,
        role,
        subject,
    )
