"""数据库基础模型导出。

仅提供 Base 定义，不在应用启动时自动建表。
表结构由迁移脚本维护；测试环境通过 Base.metadata 建表。
"""

from clinic_iam.models.base import Base

__all__ = ["Base"]
