"""
用户应用服务（application/services）- 编排领域服务和处理应用逻辑
"""
from typing import Optional, List, Callable, Tuple

from domain.user.entity import User, Role, UserStatus, LoginAuditEntry
from domain.user.events import UserLoggedIn, UserDeleted, SessionsRevoked
from domain.user.repository import UserFilters
from domain.user.service import UserDomainService, PasswordService
from domain.user.authorization import ensure_can_manage, ensure_not_self, ensure_owner_or_admin
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import (
    AccountDisabledException,
    CurrentPasswordMismatchException,
    InvalidCredentialsException,
    UserNotFoundException,
)
from application.dto import (
    UserCreateDTO, AdminUserCreateDTO, AdminUserUpdateDTO, ProfileUpdateDTO,
    ChangePasswordDTO, LoginDTO, LoginResultDTO, IdentityDTO, UserResponseDTO,
    ProductAssociationDTO, ProductCreateDTO, ClientInfo, UserListQuery,
)
from application.services.session_service import SessionService
from core.logging_config import get_logger


logger = get_logger(__name__)


class UserApplicationService:
    """用户应用服务 - 处理应用层逻辑"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        session_service: Optional[SessionService] = None,
        password_service: Optional[PasswordService] = None,
    ):
        self._uow_factory = uow_factory
        self._session_service = session_service or SessionService(uow_factory)
        self._password_service = password_service or PasswordService()

    @property
    def session_service(self) -> SessionService:
        return self._session_service

    def _domain_service(self, uow: AbstractUnitOfWork) -> UserDomainService:
        return UserDomainService(uow.user_repository, self._password_service)

    def _publish(self, events: List) -> None:
        # 事件目前只写入结构化日志
        for event in events:
            logger.info(
                "domain_event",
                event_type=type(event).__name__,
                event_id=event.event_id,
                user_id=getattr(event, "user_id", None),
            )

    async def register(self, data: UserCreateDTO) -> UserResponseDTO:
        """自助注册"""
        async with self._uow_factory() as uow:
            domain_service = self._domain_service(uow)
            user = await domain_service.register_user(
                username=data.username,
                email=data.email,
                password=data.password,
                nickname=data.nickname,
                source=data.source,
            )
            events = domain_service.get_domain_events()

        self._publish(events)
        logger.info("user_registered", user_id=user.id, source=user.source)
        return self._to_response_dto(user)

    async def admin_create_user(self, actor: IdentityDTO,
                                data: AdminUserCreateDTO) -> UserResponseDTO:
        """管理员创建用户，可指定角色与状态"""
        role = Role.parse(data.role)
        status = UserStatus.parse(data.status)
        ensure_can_manage(actor, role)

        async with self._uow_factory() as uow:
            domain_service = self._domain_service(uow)
            user = await domain_service.register_user(
                username=data.username,
                email=data.email,
                password=data.password,
                nickname=data.nickname,
                source=data.source or "admin-created",
                role=role,
                status=status,
                disabled_remark=data.disabled_remark,
            )
            events = domain_service.get_domain_events()

        self._publish(events)
        logger.info("user_created_by_admin", user_id=user.id, actor_id=actor.id, role=role.value)
        return self._to_response_dto(user)

    async def login(self, data: LoginDTO, client: Optional[ClientInfo] = None) -> LoginResultDTO:
        """登录：用户名或邮箱均可

        无论成功与否都追加一条登录日志；日志在主事务结束后单独写入。
        """
        client = client or ClientInfo()
        if data.device_id and not client.device_id:
            client = client.model_copy(update={"device_id": data.device_id})

        audit = LoginAuditEntry(
            username=data.username,
            success=False,
            message="user not found",
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        try:
            async with self._uow_factory() as uow:
                domain_service = self._domain_service(uow)
                user = await uow.user_repository.find_by_username_or_email(data.username)
                if user is not None:
                    audit.user_id = user.id
                    audit.message = "password mismatch"
                try:
                    user = domain_service.verify_credentials(user, data.password)
                except AccountDisabledException:
                    audit.message = "account disabled"
                    raise

                user.record_login()
                user = await uow.user_repository.update(user)
                token, _session = await self._session_service.issue(user, client, uow)

            audit.success = True
            audit.message = "login succeeded"
        finally:
            await self._record_login_attempt(audit)

        self._publish([UserLoggedIn(user_id=user.id, ip_address=client.ip_address)])
        return LoginResultDTO(
            user=self._to_identity_dto(user),
            token=token,
            token_type="bearer",
            expires_in=self._session_service.ttl_seconds,
        )

    async def _record_login_attempt(self, entry: LoginAuditEntry) -> None:
        try:
            async with self._uow_factory() as uow:
                await uow.login_audit_repository.append(entry)
        except Exception as exc:
            # 登录日志写入失败不影响登录结果
            logger.warning(
                "login_audit_write_failed",
                username=entry.username,
                success=entry.success,
                error=str(exc),
            )
        else:
            logger.info(
                "login_attempt",
                username=entry.username,
                user_id=entry.user_id,
                success=entry.success,
                reason=entry.message,
            )

    async def logout(self, identity: IdentityDTO, token: str) -> int:
        """登出当前会话"""
        return await self._session_service.revoke(identity.id, token)

    async def logout_all(self, identity: IdentityDTO) -> int:
        """登出所有设备"""
        count = await self._session_service.revoke(identity.id)
        self._publish([SessionsRevoked(user_id=identity.id, count=count, reason="logout_all")])
        return count

    async def get_current_user(self, user_id: int) -> UserResponseDTO:
        return await self.get_user(user_id)

    async def get_user(self, user_id: int) -> UserResponseDTO:
        """获取用户信息"""
        async with self._uow_factory(readonly=True) as uow:
            user = await uow.user_repository.get_by_id(user_id)
            if not user:
                raise UserNotFoundException(user_id)
            return self._to_response_dto(user)

    async def list_users(self, query: UserListQuery) -> Tuple[List[UserResponseDTO], int]:
        """获取用户列表（带总数）"""
        filters = UserFilters(
            username=query.username or None,
            email=query.email or None,
            role=Role.parse(query.role) if query.role else None,
            status=UserStatus.parse(query.status) if query.status else None,
            source=query.source or None,
        )
        async with self._uow_factory(readonly=True) as uow:
            users, total = await uow.user_repository.list_users(filters, query.page, query.size)
            return [self._to_response_dto(user) for user in users], int(total)

    async def update_profile(self, identity: IdentityDTO,
                             data: ProfileUpdateDTO) -> UserResponseDTO:
        """自助更新资料；修改密码时同一事务内撤销全部会话"""
        changes = data.model_dump(exclude_unset=True)
        async with self._uow_factory() as uow:
            domain_service = self._domain_service(uow)
            user = await domain_service.get_user_or_raise(identity.id)
            user = await domain_service.update_user(
                user, changes, admin=False, updated_by=identity.id
            )
            if "password" in changes:
                count = await self._session_service.revoke(user.id, uow=uow)
                domain_service.events.append(
                    SessionsRevoked(user_id=user.id, count=count, reason="password_changed")
                )
            events = domain_service.get_domain_events()

        self._publish(events)
        return self._to_response_dto(user)

    async def admin_update_user(self, actor: IdentityDTO, user_id: int,
                                data: AdminUserUpdateDTO) -> UserResponseDTO:
        """管理员更新用户"""
        changes = data.model_dump(exclude_unset=True)
        if "role" in changes:
            ensure_can_manage(actor, Role.parse(changes["role"]))

        async with self._uow_factory() as uow:
            domain_service = self._domain_service(uow)
            user = await domain_service.get_user_or_raise(user_id)
            ensure_can_manage(actor, user)
            user = await domain_service.update_user(
                user, changes, admin=True, updated_by=actor.id
            )
            events = domain_service.get_domain_events()

        self._publish(events)
        return self._to_response_dto(user)

    async def change_password(self, user_id: int,
                              data: ChangePasswordDTO) -> UserResponseDTO:
        """修改密码

        校验原密码、更新哈希、撤销全部会话在同一事务中完成，任一步失败整体回滚。
        原密码错误按输入错误返回（400），调用方当前的令牌仍然有效。
        """
        async with self._uow_factory() as uow:
            domain_service = self._domain_service(uow)
            try:
                user = await domain_service.change_user_password(
                    user_id=user_id,
                    current_password=data.current_password,
                    new_password=data.new_password,
                )
            except InvalidCredentialsException:
                raise CurrentPasswordMismatchException() from None
            count = await self._session_service.revoke(user_id, uow=uow)
            domain_service.events.append(
                SessionsRevoked(user_id=user_id, count=count, reason="password_changed")
            )
            events = domain_service.get_domain_events()

        self._publish(events)
        return self._to_response_dto(user)

    async def delete_user(self, actor: IdentityDTO, user_id: int) -> bool:
        """删除用户及其会话、登录日志、产品关联"""
        ensure_not_self(actor, user_id)
        async with self._uow_factory() as uow:
            user = await uow.user_repository.get_by_id(user_id)
            if not user:
                raise UserNotFoundException(user_id)
            ensure_can_manage(actor, user)
            deleted = await uow.user_repository.delete_cascade(user_id)
            if not deleted:
                raise UserNotFoundException(user_id)

        self._publish([UserDeleted(user_id=user_id, deleted_by=actor.id)])
        return True

    async def add_product(self, actor: IdentityDTO, user_id: int,
                          data: ProductCreateDTO) -> UserResponseDTO:
        """关联产品"""
        ensure_owner_or_admin(actor, user_id)
        async with self._uow_factory() as uow:
            domain_service = self._domain_service(uow)
            user = await domain_service.add_product(user_id, data.id, data.name)

        logger.info("user_product_added", user_id=user_id, product_id=data.id, actor_id=actor.id)
        return self._to_response_dto(user)

    async def remove_product(self, actor: IdentityDTO, user_id: int,
                             product_id: str) -> UserResponseDTO:
        """取消产品关联"""
        ensure_owner_or_admin(actor, user_id)
        async with self._uow_factory() as uow:
            domain_service = self._domain_service(uow)
            user = await domain_service.remove_product(user_id, product_id)

        logger.info("user_product_removed", user_id=user_id, product_id=product_id, actor_id=actor.id)
        return self._to_response_dto(user)

    def _to_identity_dto(self, user: User) -> IdentityDTO:
        return IdentityDTO(
            id=user.id,
            username=user.username,
            email=user.email,
            nickname=user.nickname,
            avatar=user.avatar,
            role=Role(user.role).value,
            status=UserStatus(user.status).value,
        )

    def _to_response_dto(self, user: User) -> UserResponseDTO:
        """将领域实体转换为响应DTO"""
        return UserResponseDTO(
            id=user.id,
            username=user.username,
            email=user.email,
            nickname=user.nickname,
            avatar=user.avatar,
            role=Role(user.role).value,
            status=UserStatus(user.status).value,
            disabled_remark=user.disabled_remark,
            source=user.source,
            created_at=user.created_at,
            updated_at=user.updated_at,
            last_login_at=user.last_login_at,
            products=[
                ProductAssociationDTO(id=p.id, name=p.name, joined_at=p.joined_at)
                for p in user.products
            ],
        )

