"""Client endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from finwrk.app.core.security import get_current_user
from finwrk.app.crud.crud_client import client_crud
from finwrk.app.db.session import get_db
from finwrk.app.models.user import User
from finwrk.app.schemas.client import ClientCreate, ClientRead, ClientUpdate

router = APIRouter(prefix="/clients", tags=["clients"])


@router.post("/", response_model=ClientRead, status_code=status.HTTP_201_CREATED)
async def create_client(
    client_in: ClientCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return client_crud.create(db, obj_in=client_in, owner_id=current_user.id)


@router.get("/", response_model=list[ClientRead])
async def list_clients(
    include_archived: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return client_crud.get_multi(db, owner_id=current_user.id, include_archived=include_archived)


@router.get("/{client_id}", response_model=ClientRead)
async def get_client(client_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    client = client_crud.get(db, client_id=client_id, owner_id=current_user.id)
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client


@router.patch("/{client_id}", response_model=ClientRead)
async def update_client(
    client_id: int,
    client_in: ClientUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    client = client_crud.get(db, client_id=client_id, owner_id=current_user.id)
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client_crud.update(db, db_obj=client, obj_in=client_in)


@router.post("/{client_id}/archive", response_model=ClientRead)
async def archive_client(client_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    client = client_crud.get(db, client_id=client_id, owner_id=current_user.id)
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client_crud.archive(db, db_obj=client)
