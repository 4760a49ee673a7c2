"""Customer service - Business logic for customer operations"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Customer, User
from ...services.audit import write_audit_log
from ...services.preference_checker import get_allowed_channels
from ...shared.responses import APIError
from .repository import CustomerRepository
from .schemas import PREFERENCE_FIELDS, CustomerCreate, CustomerUpdate, PreferencesUpdate

logger = logging.getLogger(__name__)


class CustomerService:
    """Service layer for customer business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CustomerRepository()

    def list_customers(self, search: Optional[str], zone: Optional[str], page: int, limit: int) -> dict:
        customers, total = self.repo.list_customers(
            self.db, search=search, zone=zone, limit=limit, offset=(page - 1) * limit
        )
        return {"customers": customers, "total": total}

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.repo.get_by_id(self.db, customer_id)
        if not customer:
            raise APIError("not_found", "Customer not found", 404)
        return customer

    def create_customer(self, data: CustomerCreate, user: User) -> Customer:
        customer = self.repo.create(
            self.db,
            full_name=data.fullName,
            email=data.email,
            phone_e164=data.phone,
            address_line1=data.addressLine1,
            city=data.city,
            state=data.state,
            postal_code=data.postalCode,
            zone=data.zone,
            customer_type=data.customerType or "standard",
            notes=data.notes,
        )
        write_audit_log(
            self.db, "create_customer", "customer", customer.id, actor_user_id=user.id, commit=True
        )
        logger.info(f"✅ Customer {customer.id} created by user {user.id}")
        return customer

    def update_customer(self, customer_id: int, data: CustomerUpdate, user: User) -> Customer:
        customer = self.get_customer(customer_id)
        updates = {
            "full_name": data.fullName,
            "email": data.email,
            "phone_e164": data.phone,
            "address_line1": data.addressLine1,
            "city": data.city,
            "state": data.state,
            "postal_code": data.postalCode,
            "zone": data.zone,
            "customer_type": data.customerType,
            "notes": data.notes,
            "auth_uid": data.authUid,
        }
        customer = self.repo.update(self.db, customer, **updates)
        write_audit_log(
            self.db,
            "update_customer",
            "customer",
            customer.id,
            actor_user_id=user.id,
            meta={"fields": [k for k, v in updates.items() if v is not None]},
            commit=True,
        )
        return customer

    def delete_customer(self, customer_id: int, user: User) -> dict:
        customer = self.get_customer(customer_id)
        if self.repo.count_jobs(self.db, customer_id) > 0:
            raise APIError("has_dependents", "Customer has jobs and cannot be deleted", 409)

        self.repo.delete(self.db, customer)
        write_audit_log(
            self.db, "delete_customer", "customer", customer_id, actor_user_id=user.id, commit=True
        )
        return {"deleted": True, "id": customer_id}

    def get_preferences(self, customer_id: int):
        self.get_customer(customer_id)
        return self.repo.get_preferences(self.db, customer_id)

    def allowed_channels(self, customer_id: int, message_type: Optional[str] = None) -> list[str]:
        return get_allowed_channels(self.db, customer_id, message_type)

    def update_preferences(self, customer_id: int, data: PreferencesUpdate, actor_user_id: Optional[int] = None):
        self.get_customer(customer_id)
        provided = data.model_dump(exclude_unset=True)
        values = {PREFERENCE_FIELDS[k]: v for k, v in provided.items() if k in PREFERENCE_FIELDS}

        if values.get("do_not_contact") is True:
            values["opted_out_at"] = datetime.utcnow()
        elif values.get("do_not_contact") is False:
            values["opted_out_at"] = None

        prefs = self.repo.upsert_preferences(self.db, customer_id, **values)
        write_audit_log(
            self.db,
            "update_preferences",
            "customer",
            customer_id,
            actor_user_id=actor_user_id,
            meta={"fields": sorted(provided.keys())},
            commit=True,
        )
        return prefs
