from fastapi import APIRouter, Depends

from coachbook.auth.caller import Caller
from coachbook.auth.dependencies import get_current_caller

router = APIRouter(tags=['auth'])


@router.get("/me")
def me(caller: Caller = Depends(get_current_caller)):
    return {
        "id": caller.user_id,
        "email": caller.email,
        "role": caller.role,
        "membership_tier": caller.membership_tier,
        "is_member": caller.is_member,
    }
