"""认证相关模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clinic_iam.models.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin


class RefreshToken(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """刷新令牌会话记录。

    说明：
    1. 只保存原始令牌的 SHA-256 摘要，原始值仅在签发时返回给调用方。
    2. revoked_at 一旦写入永久失效；replaced_by 串联轮换链。
    3. 本服务不删除记录，清理策略由外部保留策略负责。
    """

    __tablename__ = "refresh_tokens"

    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    token_hash: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 轮换后新令牌的记录 ID。
    replaced_by: Mapped[UUID | None] = mapped_column()
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
