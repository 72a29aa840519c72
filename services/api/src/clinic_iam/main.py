"""FastAPI 应用入口点。"""

import logging

from fastapi import FastAPI

from clinic_iam.api.router import api_router
from clinic_iam.core.config import get_settings
from clinic_iam.exceptions import register_exception_handlers
from clinic_iam.middlewares import register_middlewares

settings = get_settings()


def configure_logging() -> None:
    """按配置初始化进程级日志格式与级别。"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    configure_logging()
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        description=(
            "多租户诊所管理后台身份与权限服务。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "通过访问令牌进行认证。\n"
            "组织上下文：使用访问令牌中的 `org_id`。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "auth", "description": "登录、令牌轮换、登出与改密。"},
            {"name": "permissions", "description": "权限点目录管理。"},
            {"name": "roles", "description": "角色与角色权限管理。"},
            {"name": "users", "description": "组织内用户管理。"},
        ],
    )

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
