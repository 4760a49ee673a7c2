"""
Authentication and authorization dependencies

Staff and portal customers both sign in with Firebase. The bearer token is
verified against Google's signing certificates; the uid then resolves to a
staff User (role-checked) or to the Customer linked through auth_uid.
"""

import base64
import json
import logging
import time
from typing import Optional

import httpx
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import FIREBASE_PROJECT_ID
from .database import get_db
from .models import Customer, User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Role groups used by routers
MANAGER_ROLES = ("admin", "manager")
OFFICE_ROLES = ("admin", "manager", "dispatcher")

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)

# Cache for Google's public keys
_cached_keys: Optional[dict] = None


async def get_google_public_keys(force_refresh: bool = False) -> Optional[dict]:
    """Fetch Google's public keys for Firebase token verification"""
    global _cached_keys
    if _cached_keys and not force_refresh:
        return _cached_keys

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(GOOGLE_CERTS_URL, timeout=10.0)
        if response.status_code == 200:
            _cached_keys = response.json()
            logger.info(f"✅ Fetched {len(_cached_keys)} Google public keys")
            return _cached_keys
        logger.error(f"❌ Failed to fetch Google public keys: HTTP {response.status_code}")
    except httpx.HTTPError as e:
        logger.error(f"❌ Error fetching Google public keys: {str(e)}")
    return None


def _b64url_decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


async def verify_firebase_token(token: str) -> dict:
    """
    Verify a Firebase ID token: RS256 signature against Google's certificates,
    then audience, issuer, expiry and issued-at claims.
    """
    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Firebase not configured")

    parts = token.split(".")
    if len(parts) != 3:
        raise HTTPException(status_code=401, detail="Invalid token format")
    header_b64, payload_b64, signature_b64 = parts

    try:
        header = json.loads(_b64url_decode(header_b64))
        payload = json.loads(_b64url_decode(payload_b64))
        signature = _b64url_decode(signature_b64)
    except (ValueError, TypeError) as e:
        logger.error(f"❌ Failed to decode token: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token encoding") from e

    if header.get("alg") != "RS256":
        raise HTTPException(status_code=401, detail="Invalid token algorithm")

    kid = header.get("kid")
    if not kid:
        raise HTTPException(status_code=401, detail="Token missing key ID")

    public_keys = await get_google_public_keys()
    if not public_keys or kid not in public_keys:
        logger.warning(f"⚠️ Key ID {kid} not found in public keys, refreshing cache")
        public_keys = await get_google_public_keys(force_refresh=True)
        if not public_keys or kid not in public_keys:
            raise HTTPException(status_code=401, detail="Unable to verify token signature")

    cert = load_pem_x509_certificate(public_keys[kid].encode())
    try:
        cert.public_key().verify(
            signature, f"{header_b64}.{payload_b64}".encode(), padding.PKCS1v15(), hashes.SHA256()
        )
    except Exception as e:
        logger.error(f"❌ Token signature verification failed: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token signature") from e

    if payload.get("aud") != FIREBASE_PROJECT_ID:
        raise HTTPException(status_code=401, detail="Invalid token audience")

    if payload.get("iss") != f"https://securetoken.google.com/{FIREBASE_PROJECT_ID}":
        raise HTTPException(status_code=401, detail="Invalid token issuer")

    now = time.time()
    if payload.get("exp", 0) < now:
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        )

    # Allow 60 seconds clock skew
    if payload.get("iat", 0) > now + 60:
        raise HTTPException(status_code=401, detail="Invalid token")

    return payload


async def get_token_uid(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Verified Firebase uid of the caller"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    decoded_token = await verify_firebase_token(credentials.credentials)

    # Firebase ID tokens use 'sub' as the user ID claim
    uid = decoded_token.get("sub") or decoded_token.get("user_id") or decoded_token.get("uid")
    if not uid:
        logger.error(f"❌ Token missing user ID claim. Claims: {list(decoded_token.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")
    return uid


async def get_current_user(
    uid: str = Depends(get_token_uid),
    db: Session = Depends(get_db),
) -> User:
    """Active staff user for the token; portal-only accounts are rejected"""
    user = db.query(User).filter(User.firebase_uid == uid).first()

    if not user or not user.is_active or not user.role:
        logger.warning(f"⚠️ Non-staff uid {uid} attempted staff access")
        raise HTTPException(status_code=403, detail="Staff access required")

    return user


def require_roles(*roles: str):
    """
    Dependency factory restricting an endpoint to the given staff roles.

    Example:
        @router.post("", dependencies=[Depends(require_roles("admin", "manager"))])
    """

    async def role_checker(user: User = Depends(get_current_user)) -> User:
        if roles and user.role not in roles:
            logger.warning(f"🔒 User {user.id} with role {user.role} denied (requires {roles})")
            raise HTTPException(
                status_code=403,
                detail=f"This action requires one of the roles: {', '.join(roles)}",
            )
        return user

    return role_checker


async def get_portal_customer(
    uid: str = Depends(get_token_uid),
    db: Session = Depends(get_db),
) -> Customer:
    """Customer record linked to the portal login"""
    customer = db.query(Customer).filter(Customer.auth_uid == uid).first()
    if not customer:
        raise HTTPException(status_code=403, detail="No customer account linked to this login")
    return customer
