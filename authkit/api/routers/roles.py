from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from authkit.api.deps import get_db
import authkit.repositories.role as role_repo
from authkit.errors import NotFoundError
from authkit.schemas.role import Role

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("", response_model=list[Role])
def get_roles(db: Session = Depends(get_db)):
    roles = role_repo.get_all_roles(db)
    return roles


@router.get("/{role_id}", response_model=Role)
def get_role(role_id: int, db: Session = Depends(get_db)):
    role = role_repo.get_role_by_id(db, role_id)
    if not role:
        raise NotFoundError(f"Role with id {role_id} not found")
    return role
