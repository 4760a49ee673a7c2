"""Customer domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_choice, validate_email, validate_hhmm, validate_us_phone

CUSTOMER_TYPES = ("standard", "vip")
CONTACT_METHODS = ("email", "sms", "phone", "portal")


class CustomerCreate(BaseModel):
    fullName: str
    email: Optional[str] = None
    phone: Optional[str] = None
    addressLine1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postalCode: Optional[str] = None
    zone: Optional[str] = None
    customerType: Optional[str] = "standard"
    notes: Optional[str] = None

    @field_validator("fullName")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_us_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("customerType")
    @classmethod
    def validate_customer_type(cls, v):
        return validate_choice(v, CUSTOMER_TYPES, "customer type")


class CustomerUpdate(BaseModel):
    fullName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    addressLine1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postalCode: Optional[str] = None
    zone: Optional[str] = None
    customerType: Optional[str] = None
    notes: Optional[str] = None
    authUid: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_us_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("customerType")
    @classmethod
    def validate_customer_type(cls, v):
        return validate_choice(v, CUSTOMER_TYPES, "customer type")


class CustomerResponse(BaseModel):
    id: int
    public_id: Optional[str] = None
    fullName: str
    email: Optional[str] = None
    phone: Optional[str] = None
    addressLine1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postalCode: Optional[str] = None
    zone: Optional[str] = None
    customerType: Optional[str] = None
    lifetimeValue: float = 0.0
    lastServiceDate: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, c) -> "CustomerResponse":
        return cls(
            id=c.id,
            public_id=c.public_id,
            fullName=c.full_name,
            email=c.email,
            phone=c.phone_e164,
            addressLine1=c.address_line1,
            city=c.city,
            state=c.state,
            postalCode=c.postal_code,
            zone=c.zone,
            customerType=c.customer_type,
            lifetimeValue=c.lifetime_value or 0.0,
            lastServiceDate=c.last_service_date,
            notes=c.notes,
            created_at=c.created_at,
        )


class PreferencesUpdate(BaseModel):
    """Communication preferences; omitted fields keep their current value"""

    emailEnabled: Optional[bool] = None
    smsEnabled: Optional[bool] = None
    phoneEnabled: Optional[bool] = None
    portalEnabled: Optional[bool] = None
    marketingEmails: Optional[bool] = None
    appointmentReminders: Optional[bool] = None
    serviceUpdates: Optional[bool] = None
    promotionalMessages: Optional[bool] = None
    billingNotifications: Optional[bool] = None
    surveyRequests: Optional[bool] = None
    preferredContactMethod: Optional[str] = None
    doNotContact: Optional[bool] = None
    optOutReason: Optional[str] = None
    maxMessagesPerWeek: Optional[int] = None
    quietHoursStart: Optional[str] = None
    quietHoursEnd: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator("quietHoursStart", "quietHoursEnd")
    @classmethod
    def validate_quiet_hours(cls, v):
        return validate_hhmm(v)

    @field_validator("preferredContactMethod")
    @classmethod
    def validate_contact_method(cls, v):
        return validate_choice(v, CONTACT_METHODS, "contact method")

    @field_validator("maxMessagesPerWeek")
    @classmethod
    def validate_max_messages(cls, v):
        if v is not None and not 0 <= v <= 100:
            raise ValueError("maxMessagesPerWeek must be between 0 and 100")
        return v


# camelCase request field -> CommunicationPreference column
PREFERENCE_FIELDS = {
    "emailEnabled": "email_enabled",
    "smsEnabled": "sms_enabled",
    "phoneEnabled": "phone_enabled",
    "portalEnabled": "portal_enabled",
    "marketingEmails": "marketing_emails",
    "appointmentReminders": "appointment_reminders",
    "serviceUpdates": "service_updates",
    "promotionalMessages": "promotional_messages",
    "billingNotifications": "billing_notifications",
    "surveyRequests": "survey_requests",
    "preferredContactMethod": "preferred_contact_method",
    "doNotContact": "do_not_contact",
    "optOutReason": "opt_out_reason",
    "maxMessagesPerWeek": "max_messages_per_week",
    "quietHoursStart": "quiet_hours_start",
    "quietHoursEnd": "quiet_hours_end",
    "timezone": "timezone",
}


def serialize_preferences(prefs) -> dict:
    if prefs is None:
        return {"customerId": None, "isDefault": True, **{k: None for k in PREFERENCE_FIELDS}}
    data = {field: getattr(prefs, column) for field, column in PREFERENCE_FIELDS.items()}
    data["customerId"] = prefs.customer_id
    data["optedOutAt"] = prefs.opted_out_at
    data["isDefault"] = False
    return data
