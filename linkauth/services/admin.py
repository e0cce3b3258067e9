import logging

from linkauth.schemas.users import UserResponse
from linkauth.services.errors import SelfActionDenied, UserNotFound
from linkauth.services.gate import CurrentIdentity
from linkauth.services.users import user_store

LOGGER = logging.getLogger(__name__)


class AdminService:
    """Administrative account actions.

    An administrator may not act on their own account: changing their own
    role (to any value), changing their own activation state, or deleting
    themselves all fail with SelfActionDenied before anything is touched.
    """

    def update_role(
        self, actor: CurrentIdentity, user_id: int, role: str
    ) -> UserResponse:
        if user_id == actor.user_id:
            raise SelfActionDenied("You cannot change your own role")
        user = user_store.set_role(user_id, role)
        LOGGER.info("Admin %s set role of account %s to %s", actor.user_id, user_id, role)
        return user

    def set_active(
        self, actor: CurrentIdentity, user_id: int, is_active: bool
    ) -> UserResponse:
        if user_id == actor.user_id:
            raise SelfActionDenied("You cannot deactivate your own account")
        user = user_store.set_active(user_id, is_active)
        LOGGER.info(
            "Admin %s set account %s active=%s", actor.user_id, user_id, is_active
        )
        return user

    def toggle_status(self, actor: CurrentIdentity, user_id: int) -> UserResponse:
        if user_id == actor.user_id:
            raise SelfActionDenied("You cannot deactivate your own account")
        current = user_store.get_user(user_id)
        if current is None:
            raise UserNotFound()
        return self.set_active(actor, user_id, not current.is_active)

    def delete_user(self, actor: CurrentIdentity, user_id: int) -> None:
        if user_id == actor.user_id:
            raise SelfActionDenied("You cannot delete your own account")
        user_store.delete_user(user_id)
        LOGGER.info("Admin %s deleted account %s", actor.user_id, user_id)


admin_service = AdminService()
