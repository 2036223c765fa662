"""CRUD operations for clients."""

from typing import List, Optional

from sqlalchemy.orm import Session

from finwrk.app.models.client import Client
from finwrk.app.schemas.client import ClientCreate, ClientUpdate


class CRUDClient:
    def create(self, db: Session, *, obj_in: ClientCreate, owner_id: int) -> Client:
        obj = Client(owner_id=owner_id, **obj_in.model_dump())
        db.add(obj)
        db.commit()
        db.refresh(obj)
        return obj

    def get(self, db: Session, *, client_id: int, owner_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id, Client.owner_id == owner_id).first()

    def get_multi(self, db: Session, *, owner_id: int, include_archived: bool = False) -> List[Client]:
        query = db.query(Client).filter(Client.owner_id == owner_id)
        if not include_archived:
            query = query.filter(Client.archived.is_(False))
        return query.order_by(Client.name.asc(), Client.id.asc()).all()

    def update(self, db: Session, *, db_obj: Client, obj_in: ClientUpdate) -> Client:
        update_data = obj_in.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(db_obj, field, value)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def archive(self, db: Session, *, db_obj: Client) -> Client:
        # Clients with invoices are never hard-deleted
        db_obj.archived = True
        db.commit()
        db.refresh(db_obj)
        return db_obj


client_crud = CRUDClient()
