"""Review repository - Database operations for review requests"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models_support import ReviewRequest


class ReviewRepository:
    """Repository for review request database operations"""

    @staticmethod
    def get_for_job(db: Session, customer_id: int, job_id: int) -> Optional[ReviewRequest]:
        return (
            db.query(ReviewRequest)
            .filter(ReviewRequest.customer_id == customer_id, ReviewRequest.job_id == job_id)
            .first()
        )

    @staticmethod
    def get_by_public_id(db: Session, public_id: str) -> Optional[ReviewRequest]:
        return db.query(ReviewRequest).filter(ReviewRequest.public_id == public_id).first()

    @staticmethod
    def create(db: Session, **kwargs) -> ReviewRequest:
        request = ReviewRequest(**kwargs)
        db.add(request)
        db.flush()
        return request

    @staticmethod
    def list_requests(
        db: Session,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[ReviewRequest], int]:
        query = db.query(ReviewRequest)
        if status:
            query = query.filter(ReviewRequest.status == status)
        if customer_id:
            query = query.filter(ReviewRequest.customer_id == customer_id)

        total = query.count()
        requests = query.order_by(ReviewRequest.id.desc()).offset(offset).limit(limit).all()
        return requests, total

    @staticmethod
    def rating_counts(db: Session) -> dict[int, int]:
        rows = (
            db.query(ReviewRequest.rating, func.count(ReviewRequest.id))
            .filter(ReviewRequest.rating.isnot(None))
            .group_by(ReviewRequest.rating)
            .all()
        )
        return {rating: count for rating, count in rows}

    @staticmethod
    def count(db: Session) -> int:
        return db.query(ReviewRequest).count()
