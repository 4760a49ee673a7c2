"""Review domain schemas"""

from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_choice

REQUEST_METHODS = ("portal", "email", "sms")
MAX_FEEDBACK_LENGTH = 2000
MAX_RESOLUTION_LENGTH = 500


class ReviewRequestCreate(BaseModel):
    customerId: int
    jobId: int
    requestMethod: str = "portal"

    @field_validator("requestMethod")
    @classmethod
    def validate_method(cls, v):
        return validate_choice(v, REQUEST_METHODS, "request method")


class ReviewSubmitRequest(BaseModel):
    rating: int
    feedback: Optional[str] = None
    resolutionRequest: Optional[str] = None

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v):
        if not 1 <= v <= 5:
            raise ValueError("Rating must be between 1 and 5")
        return v

    @field_validator("feedback")
    @classmethod
    def validate_feedback(cls, v):
        if v and len(v) > MAX_FEEDBACK_LENGTH:
            raise ValueError(f"Feedback must be {MAX_FEEDBACK_LENGTH} characters or less")
        return v

    @field_validator("resolutionRequest")
    @classmethod
    def validate_resolution(cls, v):
        if v and len(v) > MAX_RESOLUTION_LENGTH:
            raise ValueError(f"Resolution request must be {MAX_RESOLUTION_LENGTH} characters or less")
        return v


def serialize_review_request(r) -> dict:
    return {
        "id": r.id,
        "publicId": r.public_id,
        "customerId": r.customer_id,
        "jobId": r.job_id,
        "requestMethod": r.request_method,
        "status": r.status,
        "sentAt": r.sent_at,
        "portalReviewCompleted": r.portal_review_completed,
        "rating": r.rating,
        "feedback": r.feedback,
        "submittedAt": r.submitted_at,
        "googleReviewRequested": r.google_review_requested,
        "supportTicketId": r.support_ticket_id,
        "createdAt": r.created_at,
    }
