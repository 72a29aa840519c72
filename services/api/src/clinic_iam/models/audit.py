"""审计日志模型。"""

from typing import Any
from uuid import UUID

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clinic_iam.models.base import Base, CreatedAtMixin, JSONType, UUIDPrimaryKeyMixin


class AuditLog(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """身份相关变更审计日志，只追加不修改。"""

    __tablename__ = "audit_logs"

    # 操作人用户 ID，不允许为空。
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # 动作标识，例如 create/update/delete/login。
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    # 资源类型，例如 users/roles/permissions/refresh_tokens。
    resource: Mapped[str] = mapped_column(String(64), nullable=False)
    # 富化后的审计载荷：actor_user_id/action/resource/target_ids/...
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
