from fastapi import APIRouter

from authkit.api.routers import auth, roles, settings, users

api_router = APIRouter()

api_router.include_router(roles.router)
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(settings.router)
