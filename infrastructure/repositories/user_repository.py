"""
用户仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete, or_
from sqlalchemy.exc import IntegrityError

from domain.user.entity import User, ProductAssociation, Role, UserStatus
from domain.user.repository import UserRepository, UserFilters
from infrastructure.models.user import UserModel, UserProductModel
from infrastructure.models.session import UserSessionModel
from infrastructure.models.login_log import LoginLogModel
from core.logging_config import get_logger
from domain.common.exceptions import (
    DuplicateKeyException,
    DuplicateAssociationException,
    UserNotFoundException,
)


logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):
    """用户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        """将数据库模型转换为领域实体"""
        return User(
            id=model.id,
            username=model.username,
            email=model.email,
            hashed_password=model.password_hash,
            nickname=model.nickname,
            avatar=model.avatar,
            role=Role(model.role),
            status=UserStatus(model.status),
            disabled_remark=model.disabled_remark,
            source=model.source,
            created_at=model.created_at,
            updated_at=model.updated_at,
            last_login_at=model.last_login_at,
            products=[
                ProductAssociation(id=p.product_id, name=p.name, joined_at=p.joined_at)
                for p in model.products
            ],
        )

    def _apply(self, model: UserModel, entity: User) -> None:
        """把实体的标量字段写回数据库模型"""
        model.username = entity.username
        model.email = entity.email
        model.password_hash = entity.hashed_password
        model.nickname = entity.nickname
        model.avatar = entity.avatar
        model.role = Role(entity.role).value
        model.status = UserStatus(entity.status).value
        model.disabled_remark = entity.disabled_remark
        model.source = entity.source
        if entity.created_at is not None:
            model.created_at = entity.created_at
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at
        model.last_login_at = entity.last_login_at

    def _conflict_from(self, exc: IntegrityError, user: User, event: str) -> Exception:
        msg = str(exc.orig if exc.orig is not None else exc).lower()
        for field in ("username", "email"):
            if field in msg:
                logger.warning(event, field=field, user_id=user.id)
                return DuplicateKeyException(field, getattr(user, field))
        return exc

    async def _get_model(self, user_id: int) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user_id)
        )
        return result.scalar_one_or_none()

    async def create(self, user: User) -> User:
        """创建用户"""
        db_user = UserModel(products=[])
        self._apply(db_user, user)
        self.session.add(db_user)
        try:
            await self.session.flush()  # 获取生成的ID
        except IntegrityError as e:
            # 并发注册时由唯一约束兜底；事务由 UoW 回滚
            raise self._conflict_from(e, user, "create_user_conflict")
        return self._to_entity(db_user)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """根据ID获取用户"""
        db_user = await self._get_model(user_id)
        return self._to_entity(db_user) if db_user else None

    async def find_by_username_or_email(self, identifier: str) -> Optional[User]:
        if not identifier:
            return None
        result = await self.session.execute(
            select(UserModel)
            .where(or_(UserModel.username == identifier, UserModel.email == identifier))
            .order_by(UserModel.id)
            .limit(1)
        )
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def find_conflict(self, username: Optional[str], email: Optional[str],
                            exclude_id: Optional[int] = None) -> Optional[User]:
        conditions = []
        if username:
            conditions.append(UserModel.username == username)
        if email:
            conditions.append(UserModel.email == email)
        if not conditions:
            return None

        query = select(UserModel).where(or_(*conditions))
        if exclude_id is not None:
            query = query.where(UserModel.id != exclude_id)
        result = await self.session.execute(query.order_by(UserModel.id).limit(1))
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    def _filter_conditions(self, filters: UserFilters) -> list:
        conditions = []
        if filters.username:
            conditions.append(UserModel.username.contains(filters.username, autoescape=True))
        if filters.email:
            conditions.append(UserModel.email.contains(filters.email, autoescape=True))
        if filters.role is not None:
            conditions.append(UserModel.role == Role(filters.role).value)
        if filters.status is not None:
            conditions.append(UserModel.status == UserStatus(filters.status).value)
        if filters.source:
            conditions.append(UserModel.source == filters.source)
        return conditions

    async def list_users(self, filters: UserFilters, page: int,
                         size: int) -> Tuple[List[User], int]:
        """获取用户列表（带总数）"""
        conditions = self._filter_conditions(filters)

        # 默认按创建时间倒序，再按ID倒序，确保分页稳定
        query = (
            select(UserModel)
            .where(*conditions)
            .order_by(UserModel.created_at.desc(), UserModel.id.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        result = await self.session.execute(query)
        db_users = result.scalars().all()

        total = await self.session.execute(
            select(func.count()).select_from(UserModel).where(*conditions)
        )
        return [self._to_entity(db_user) for db_user in db_users], int(total.scalar_one())

    async def update(self, user: User) -> User:
        """更新用户"""
        db_user = await self._get_model(user.id)
        if not db_user:
            raise UserNotFoundException(user.id)

        self._apply(db_user, user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise self._conflict_from(e, user, "update_user_conflict")
        return self._to_entity(db_user)

    async def _delete_user_row(self, user_id: int) -> None:
        await self.session.execute(delete(UserModel).where(UserModel.id == user_id))

    async def delete_cascade(self, user_id: int) -> bool:
        """删除用户及关联数据；全部语句处于同一事务，失败时由 UoW 整体回滚"""
        exists = await self.session.execute(
            select(UserModel.id).where(UserModel.id == user_id)
        )
        if exists.scalar_one_or_none() is None:
            return False

        sessions = await self.session.execute(
            delete(UserSessionModel).where(UserSessionModel.user_id == user_id)
        )
        logs = await self.session.execute(
            delete(LoginLogModel).where(LoginLogModel.user_id == user_id)
        )
        await self.session.execute(
            delete(UserProductModel).where(UserProductModel.user_id == user_id)
        )
        await self._delete_user_row(user_id)
        # Core 删除绕过了 ORM，清掉身份映射中的旧对象
        self.session.expunge_all()

        logger.info(
            "user_deleted_cascade",
            user_id=user_id,
            sessions=sessions.rowcount,
            login_logs=logs.rowcount,
        )
        return True

    async def add_product(self, user_id: int, product: ProductAssociation) -> None:
        db_user = await self._get_model(user_id)
        if not db_user:
            raise UserNotFoundException(user_id)
        db_user.products.append(UserProductModel(
            product_id=product.id,
            name=product.name,
            joined_at=product.joined_at,
        ))
        try:
            await self.session.flush()
        except IntegrityError:
            raise DuplicateAssociationException(product.id)

    async def remove_product(self, user_id: int, product_id: str) -> bool:
        db_user = await self._get_model(user_id)
        if not db_user:
            return False
        matched = [p for p in db_user.products if p.product_id == product_id]
        for association in matched:
            db_user.products.remove(association)
        await self.session.flush()
        return bool(matched)
