"""Job repository - Database operations for jobs"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Customer, Job
from ...models_messaging import Reminder


class JobRepository:
    """Repository for job database operations"""

    @staticmethod
    def list_jobs(
        db: Session,
        customer_id: Optional[int] = None,
        status: Optional[str] = None,
        technician_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        query = db.query(Job)
        if customer_id:
            query = query.filter(Job.customer_id == customer_id)
        if status:
            query = query.filter(Job.status == status)
        if technician_id:
            query = query.filter(Job.technician_id == technician_id)
        if date_from:
            query = query.filter(Job.scheduled_date >= date_from)
        if date_to:
            query = query.filter(Job.scheduled_date <= date_to)

        total = query.count()
        jobs = query.order_by(Job.scheduled_date.desc(), Job.id.desc()).offset(offset).limit(limit).all()
        return jobs, total

    @staticmethod
    def get_by_id(db: Session, job_id: int) -> Optional[Job]:
        return db.query(Job).filter(Job.id == job_id).first()

    @staticmethod
    def get_customer(db: Session, customer_id: int) -> Optional[Customer]:
        return db.query(Customer).filter(Customer.id == customer_id).first()

    @staticmethod
    def create(db: Session, **kwargs) -> Job:
        job = Job(**kwargs)
        db.add(job)
        db.flush()
        return job

    @staticmethod
    def add_reminder(db: Session, **kwargs) -> Reminder:
        reminder = Reminder(**kwargs)
        db.add(reminder)
        db.flush()
        return reminder

    @staticmethod
    def get_pending_reminder(db: Session, job_id: int) -> Optional[Reminder]:
        return (
            db.query(Reminder)
            .filter(Reminder.job_id == job_id, Reminder.type == "job_reminder", Reminder.status == "pending")
            .order_by(Reminder.id.desc())
            .first()
        )

    @staticmethod
    def cancel_pending_reminders(db: Session, job_id: int) -> int:
        return (
            db.query(Reminder)
            .filter(Reminder.job_id == job_id, Reminder.status == "pending")
            .update({Reminder.status: "cancelled", Reminder.locked_at: None}, synchronize_session=False)
        )
