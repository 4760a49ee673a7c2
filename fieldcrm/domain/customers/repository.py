"""Customer repository - Database operations for customers"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Customer, Job
from ...models_messaging import CommunicationPreference


class CustomerRepository:
    """Repository for customer database operations"""

    @staticmethod
    def list_customers(
        db: Session,
        search: Optional[str] = None,
        zone: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Customer], int]:
        query = db.query(Customer)

        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Customer.full_name.ilike(pattern),
                    Customer.email.ilike(pattern),
                    Customer.phone_e164.ilike(pattern),
                )
            )
        if zone:
            query = query.filter(Customer.zone == zone)

        total = query.count()
        customers = query.order_by(Customer.full_name.asc()).offset(offset).limit(limit).all()
        return customers, total

    @staticmethod
    def get_by_id(db: Session, customer_id: int) -> Optional[Customer]:
        return db.query(Customer).filter(Customer.id == customer_id).first()

    @staticmethod
    def create(db: Session, **data) -> Customer:
        customer = Customer(**data)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def update(db: Session, customer: Customer, **updates) -> Customer:
        for key, value in updates.items():
            if value is not None and hasattr(customer, key):
                setattr(customer, key, value)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def delete(db: Session, customer: Customer) -> None:
        db.query(CommunicationPreference).filter(
            CommunicationPreference.customer_id == customer.id
        ).delete(synchronize_session=False)
        db.delete(customer)
        db.commit()

    @staticmethod
    def count_jobs(db: Session, customer_id: int) -> int:
        return db.query(Job).filter(Job.customer_id == customer_id).count()

    @staticmethod
    def get_preferences(db: Session, customer_id: int) -> Optional[CommunicationPreference]:
        return (
            db.query(CommunicationPreference)
            .filter(CommunicationPreference.customer_id == customer_id)
            .first()
        )

    @staticmethod
    def upsert_preferences(db: Session, customer_id: int, **values) -> CommunicationPreference:
        prefs = CustomerRepository.get_preferences(db, customer_id)
        if prefs is None:
            prefs = CommunicationPreference(customer_id=customer_id)
            db.add(prefs)
        for key, value in values.items():
            setattr(prefs, key, value)
        db.commit()
        db.refresh(prefs)
        return prefs
