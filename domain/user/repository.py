"""
用户仓储接口 - 定义数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, List, Tuple

from .entity import User, ProductAssociation, Role, UserStatus


@dataclass
class UserFilters:
    """用户列表筛选条件（username/email 为包含匹配，其余精确匹配）"""
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[Role] = None
    status: Optional[UserStatus] = None
    source: Optional[str] = None


class UserRepository(ABC):
    """用户仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, user: User) -> User:
        """创建用户；用户名/邮箱冲突时抛出 DuplicateKeyException"""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        """根据ID获取用户（含产品关联）"""
        pass

    @abstractmethod
    async def find_by_username_or_email(self, identifier: str) -> Optional[User]:
        """按用户名或邮箱查找用户"""
        pass

    @abstractmethod
    async def find_conflict(self, username: Optional[str], email: Optional[str],
                            exclude_id: Optional[int] = None) -> Optional[User]:
        """单次查询找出占用了 username 或 email 的其他用户"""
        pass

    @abstractmethod
    async def list_users(self, filters: UserFilters, page: int,
                         size: int) -> Tuple[List[User], int]:
        """分页获取用户列表，返回 (当前页, 总数)"""
        pass

    @abstractmethod
    async def update(self, user: User) -> User:
        """更新用户标量字段"""
        pass

    @abstractmethod
    async def delete_cascade(self, user_id: int) -> bool:
        """在当前事务内删除用户及其会话、登录日志与产品关联"""
        pass

    @abstractmethod
    async def add_product(self, user_id: int, product: ProductAssociation) -> None:
        pass

    @abstractmethod
    async def remove_product(self, user_id: int, product_id: str) -> bool:
        pass
