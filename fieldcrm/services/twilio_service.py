"""
Twilio SMS Service
Sends customer SMS, keeps the communication log and honours STOP/START opt-outs
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional

import httpx
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from ..config import (
    COMPANY_NAME,
    IS_PRODUCTION,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_ENCRYPTION_KEY,
    TWILIO_MESSAGING_SERVICE_SID,
    TWILIO_PHONE_NUMBER,
)
from ..models_messaging import CommunicationLog, SmsOptOut

logger = logging.getLogger(__name__)

OPT_OUT_KEYWORDS = {"STOP", "STOPALL", "UNSUBSCRIBE", "CANCEL", "END", "QUIT"}
OPT_IN_KEYWORDS = {"START", "UNSTOP", "YES"}
HELP_KEYWORDS = {"HELP", "INFO"}

HELP_REPLY = (
    f"{COMPANY_NAME}: appointment reminders and service updates. "
    "Reply STOP to opt out, START to opt back in. Msg&data rates may apply."
)

# Encryption for credentials stored in the environment
cipher_suite = Fernet(TWILIO_ENCRYPTION_KEY.encode()) if TWILIO_ENCRYPTION_KEY else None


def decrypt_credential(credential: Optional[str]) -> Optional[str]:
    """Decrypt a stored credential; plain values pass through when no key is configured"""
    if not credential or not cipher_suite:
        return credential
    return cipher_suite.decrypt(credential.encode()).decode()


def compute_twilio_signature(auth_token: str, url: str, params: dict) -> str:
    """Twilio request signature: HMAC-SHA1 over the URL plus sorted form params, base64"""
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_twilio_signature(url: str, params: dict, signature: Optional[str]) -> bool:
    """
    Check the X-Twilio-Signature header of an inbound webhook.

    Without a configured auth token the check is skipped outside production.
    """
    auth_token = decrypt_credential(TWILIO_AUTH_TOKEN)
    if not auth_token:
        if IS_PRODUCTION:
            logger.error("❌ Inbound SMS rejected: TWILIO_AUTH_TOKEN not configured")
            return False
        logger.warning("⚠️ TWILIO_AUTH_TOKEN not configured, skipping inbound signature check")
        return True

    if not signature:
        logger.warning("🚫 Inbound SMS missing X-Twilio-Signature header")
        return False

    expected = compute_twilio_signature(auth_token, url, params)
    if not hmac.compare_digest(expected, signature):
        logger.warning("🚫 Inbound SMS signature mismatch")
        return False
    return True


def is_opted_out(db: Session, phone_e164: str) -> bool:
    return db.query(SmsOptOut).filter(SmsOptOut.phone_e164 == phone_e164).first() is not None


async def send_sms(
    db: Session,
    to_phone: str,
    message_body: str,
    message_type: str,
) -> tuple[bool, Optional[str], Optional[str]]:
    """
    Send SMS via Twilio

    Args:
        db: Database session
        to_phone: Recipient phone number (must be E.164)
        message_body: SMS message content
        message_type: Type of message (job_reminder, review_request, ...)

    Returns:
        Tuple of (success, twilio_message_sid, error_message)
    """
    if not to_phone:
        return False, None, "No phone number provided"

    if not to_phone.startswith("+"):
        logger.warning(f"Phone number not in E.164 format: {to_phone}")
        return False, None, "Phone number must be in E.164 format (e.g., +1234567890)"

    if is_opted_out(db, to_phone):
        logger.info(f"📵 Skipping SMS to opted-out number {to_phone}")
        return False, None, "Recipient opted out"

    try:
        account_sid = decrypt_credential(TWILIO_ACCOUNT_SID)
        auth_token = decrypt_credential(TWILIO_AUTH_TOKEN)
        messaging_service_sid = decrypt_credential(TWILIO_MESSAGING_SERVICE_SID)
    except InvalidToken:
        logger.error("Failed to decrypt Twilio credentials")
        return False, None, "Failed to decrypt credentials"

    if not account_sid or not auth_token or not (messaging_service_sid or TWILIO_PHONE_NUMBER):
        logger.warning("⚠️ Twilio not configured - SMS not sent")
        return False, None, "Twilio not configured"

    data = {"To": to_phone, "Body": message_body}
    if messaging_service_sid:
        data["MessagingServiceSid"] = messaging_service_sid
    else:
        data["From"] = TWILIO_PHONE_NUMBER

    try:
        logger.info(f"📱 Sending SMS: type={message_type}, to={to_phone}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json",
                auth=(account_sid, auth_token),
                data=data,
                timeout=10.0,
            )

        if response.status_code in [200, 201]:
            message_sid = response.json().get("sid")
            logger.info(f"✅ SMS sent successfully: {message_sid}")
            return True, message_sid, None

        try:
            error_message = response.json().get("message", "Unknown error")
        except ValueError:
            error_message = response.text or "Unknown error"
        logger.error(f"❌ Twilio API error ({response.status_code}): {error_message}")
        return False, None, error_message

    except httpx.HTTPError as e:
        logger.error(f"❌ Twilio request failed: {str(e)}")
        return False, None, str(e)


def record_communication(
    db: Session,
    *,
    direction: str,
    status: str,
    to_e164: Optional[str] = None,
    from_e164: Optional[str] = None,
    channel: str = "sms",
    customer_id: Optional[int] = None,
    job_id: Optional[int] = None,
    template_key: Optional[str] = None,
    provider_message_id: Optional[str] = None,
    twilio_sid: Optional[str] = None,
    body: Optional[dict] = None,
    error_message: Optional[str] = None,
) -> CommunicationLog:
    """
    Insert or update a communication log row.

    Rows with a provider_message_id are upserted on it so retries of the same
    send attempt never produce duplicate log entries. Caller commits.
    """
    log = None
    if provider_message_id:
        log = (
            db.query(CommunicationLog)
            .filter(CommunicationLog.provider_message_id == provider_message_id)
            .first()
        )

    if log is None:
        log = CommunicationLog(provider_message_id=provider_message_id, direction=direction)
        db.add(log)

    log.direction = direction
    log.channel = channel
    log.status = status
    log.to_e164 = to_e164
    log.from_e164 = from_e164
    log.customer_id = customer_id
    log.job_id = job_id
    log.template_key = template_key
    log.twilio_sid = twilio_sid
    log.body = body
    log.error_message = error_message
    db.flush()
    return log


def handle_inbound_sms(db: Session, from_phone: str, message_body: str) -> str:
    """
    Process an inbound SMS keyword.

    Returns "opted_out", "opted_in", "help" or "received".
    """
    keyword = (message_body or "").strip().upper()
    action = "received"

    existing = db.query(SmsOptOut).filter(SmsOptOut.phone_e164 == from_phone).first()

    if keyword in OPT_OUT_KEYWORDS:
        if not existing:
            db.add(SmsOptOut(phone_e164=from_phone, reason=f"keyword:{keyword}"))
        action = "opted_out"
        logger.info(f"📵 {from_phone} opted out of SMS")
    elif keyword in OPT_IN_KEYWORDS:
        if existing:
            db.delete(existing)
        action = "opted_in"
        logger.info(f"📱 {from_phone} opted back in to SMS")
    elif keyword in HELP_KEYWORDS:
        action = "help"

    record_communication(
        db,
        direction="inbound",
        status="received",
        from_e164=from_phone,
        template_key=action,
        body={"text": message_body},
    )
    db.commit()
    return action
