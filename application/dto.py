"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator, model_serializer, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
from core.config import settings


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class UserCreateDTO(DTOBase):
    """自助注册DTO（密码长度由领域层按配置校验）"""
    username: str = Field(..., max_length=50, description="用户名")
    email: EmailStr = Field(..., description="邮箱地址")
    password: str = Field(..., description="密码")
    nickname: Optional[str] = Field(None, max_length=100, description="昵称，默认与用户名相同")
    source: Optional[str] = Field(None, max_length=50, description="注册来源")

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, v):
        return v.strip() if isinstance(v, str) else v


class AdminUserCreateDTO(UserCreateDTO):
    """管理员创建用户DTO"""
    role: str = Field("user", description="user / admin / superadmin")
    status: str = Field("active", description="active / inactive / blocked")
    disabled_remark: Optional[str] = Field(None, max_length=255)


class AdminUserUpdateDTO(DTOBase):
    """管理员更新DTO；只有显式提供的字段会被修改"""
    username: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    nickname: Optional[str] = Field(None, max_length=100)
    avatar: Optional[str] = Field(None, max_length=500)
    role: Optional[str] = None
    status: Optional[str] = None
    disabled_remark: Optional[str] = Field(None, max_length=255)

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, v):
        return v.strip() if isinstance(v, str) else v


class ProfileUpdateDTO(DTOBase):
    """自助资料更新DTO"""
    nickname: Optional[str] = Field(None, max_length=100)
    avatar: Optional[str] = Field(None, max_length=500)
    password: Optional[str] = None


class ChangePasswordDTO(DTOBase):
    """修改密码DTO"""
    current_password: str = Field(
        ...,
        validation_alias=AliasChoices("current_password", "old_password"),
        description="原密码",
    )
    new_password: str = Field(..., description="新密码")


class LoginDTO(DTOBase):
    """登录DTO"""
    username: str = Field(..., description="用户名或邮箱")
    password: str = Field(..., description="密码")
    device_id: Optional[str] = Field(None, max_length=128)


class ProductCreateDTO(DTOBase):
    id: str = Field(..., min_length=1, max_length=64, description="产品ID")
    name: Optional[str] = Field(None, max_length=100)


class ProductAssociationDTO(DTOBase):
    id: str
    name: Optional[str] = None
    joined_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class IdentityDTO(DTOBase):
    """会话校验通过后的最小身份投影（不含密码哈希）"""
    id: int
    username: str
    email: str
    nickname: Optional[str] = None
    avatar: Optional[str] = None
    role: str
    status: str


class UserResponseDTO(DTOBase):
    """用户响应DTO"""
    id: int
    username: str
    email: str
    nickname: Optional[str]
    avatar: Optional[str]
    role: str
    status: str
    disabled_remark: Optional[str]
    source: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    last_login_at: Optional[datetime]
    products: List[ProductAssociationDTO] = Field(default_factory=list)


class LoginResultDTO(DTOBase):
    """登录结果"""
    user: IdentityDTO
    token: str
    token_type: str = "bearer"
    expires_in: int  # 秒


class RevokeResultDTO(DTOBase):
    revoked: int


class ClientInfo(DTOBase):
    """请求来源信息，记录到会话与登录日志"""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_id: Optional[str] = None


class PaginationParams(DTOBase):
    """分页参数（页码/每页大小）"""
    page: int = Field(1, ge=1, description="页码，从1开始")
    size: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="每页大小",
    )


class UserListQuery(PaginationParams):
    """用户列表查询：用户名/邮箱模糊匹配，角色/状态/来源精确匹配"""
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
