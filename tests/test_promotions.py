from datetime import datetime, timedelta

import pytest

from fieldcrm.domain.promotions.service import PromotionService, expire_promotions
from fieldcrm.domain.promotions.validation import calculate_discount, validate_promotion
from fieldcrm.models import Customer, Job
from fieldcrm.models_promotions import Promotion
from fieldcrm.shared.responses import APIError

NOW = datetime(2024, 7, 15, 18, 0)


def make_promotion(db, **overrides) -> Promotion:
    values = {
        "title": "Summer Carpet Special",
        "promotion_type": "percentage",
        "discount_value": 20,
        "status": "active",
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=30),
        "target_audience": "all_customers",
        "target_customer_ids": [],
        "target_zones": [],
        "target_service_types": [],
        "redemptions_per_customer": 1,
        "current_redemptions": 0,
    }
    values.update(overrides)
    promotion = Promotion(**values)
    db.add(promotion)
    db.commit()
    db.refresh(promotion)
    return promotion


def make_job(db, customer, **overrides) -> Job:
    values = {
        "customer_id": customer.id,
        "service_type": "carpet_cleaning",
        "scheduled_date": NOW + timedelta(days=2),
        "total_amount": 250.0,
    }
    values.update(overrides)
    job = Job(**values)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def test_discount_calculation():
    percentage = Promotion(promotion_type="percentage", discount_value=15)
    fixed = Promotion(promotion_type="fixed_amount", discount_value=50)
    assert calculate_discount(percentage, 200) == 30.0
    assert calculate_discount(fixed, 200) == 50.0
    assert calculate_discount(fixed, 40) == 40.0


@pytest.mark.parametrize(
    "overrides,code",
    [
        ({"status": "paused"}, "PROMOTION_NOT_ACTIVE"),
        ({"start_date": NOW + timedelta(days=1)}, "PROMOTION_NOT_STARTED"),
        ({"end_date": NOW - timedelta(minutes=1)}, "PROMOTION_EXPIRED"),
        ({"max_redemptions": 5, "current_redemptions": 5}, "MAX_REDEMPTIONS_REACHED"),
        ({"min_job_value": 300}, "JOB_VALUE_TOO_LOW"),
        ({"target_zones": ["S", "E"]}, "ZONE_NOT_ELIGIBLE"),
        ({"target_service_types": ["upholstery"]}, "SERVICE_TYPE_NOT_ELIGIBLE"),
        ({"target_audience": "vip"}, "NOT_VIP_CUSTOMER"),
        ({"target_audience": "specific", "target_customer_ids": [999]}, "NOT_TARGETED_CUSTOMER"),
    ],
)
def test_validation_failures(db, customer, overrides, code):
    promotion = make_promotion(db, **overrides)
    result = validate_promotion(
        db, promotion, customer, job_value=250, service_types=["carpet_cleaning"], now=NOW
    )
    assert result["valid"] is False
    assert result["code"] == code


def test_zone_defaults_to_customer_zone(db, customer):
    promotion = make_promotion(db, target_zones=["N"])
    assert validate_promotion(db, promotion, customer, now=NOW)["valid"] is True
    assert validate_promotion(db, promotion, customer, zone="W", now=NOW)["code"] == "ZONE_NOT_ELIGIBLE"


def test_inactive_and_new_audiences(db, customer):
    inactive = make_promotion(db, target_audience="inactive")
    new = make_promotion(db, target_audience="new")

    customer.last_service_date = NOW - timedelta(days=30)
    db.commit()
    assert validate_promotion(db, inactive, customer, now=NOW)["code"] == "NOT_INACTIVE_CUSTOMER"
    assert validate_promotion(db, new, customer, now=NOW)["code"] == "NOT_NEW_CUSTOMER"

    customer.last_service_date = NOW - timedelta(days=120)
    db.commit()
    assert validate_promotion(db, inactive, customer, now=NOW)["valid"] is True


def test_validate_adds_discount_amount(db, customer):
    promotion = make_promotion(db)
    result = PromotionService(db).validate(promotion.id, customer_id=customer.id, job_value=250, now=NOW)
    assert result["valid"] is True
    assert result["discountAmount"] == 50.0


def test_claim_then_redeem(db, customer):
    promotion = make_promotion(db)
    job = make_job(db, customer)
    service = PromotionService(db)

    result, created = service.claim_for_customer(customer.id, promotion.id, now=NOW)
    assert created is True
    assert result["alreadyClaimed"] is False
    claim_code = result["claimCode"]
    assert len(claim_code) == 8

    again, created = service.claim_for_customer(customer.id, promotion.id, now=NOW)
    assert created is False
    assert again["alreadyClaimed"] is True
    assert again["claimCode"] == claim_code

    redeemed = service.redeem(claim_code, job.id, now=NOW)
    assert redeemed["discountAmount"] == 50.0
    assert redeemed["finalAmount"] == 200.0

    db.refresh(promotion)
    assert promotion.current_redemptions == 1

    with pytest.raises(APIError) as exc:
        service.redeem(claim_code, job.id, now=NOW)
    assert exc.value.error == "already_redeemed"

    with pytest.raises(APIError) as exc:
        service.claim_for_customer(customer.id, promotion.id, now=NOW)
    assert exc.value.error == "already_redeemed"


def test_claim_blocked_for_inactive_promotion(db, customer):
    draft = make_promotion(db, status="draft")
    expired = make_promotion(db, end_date=NOW - timedelta(days=1))
    service = PromotionService(db)

    with pytest.raises(APIError) as exc:
        service.claim_for_customer(customer.id, draft.id, now=NOW)
    assert exc.value.error == "invalid_status"

    with pytest.raises(APIError) as exc:
        service.claim_for_customer(customer.id, expired.id, now=NOW)
    assert exc.value.error == "expired"


def test_redeem_rejects_other_customers_job(db, customer):
    promotion = make_promotion(db)
    other = Customer(full_name="Other Person")
    db.add(other)
    db.commit()
    job = make_job(db, other)
    service = PromotionService(db)
    result, _ = service.claim_for_customer(customer.id, promotion.id, now=NOW)

    with pytest.raises(APIError) as exc:
        service.redeem(result["claimCode"], job.id, now=NOW)
    assert exc.value.error == "invalid_job"

    with pytest.raises(APIError) as exc:
        service.redeem("NOPE0000", job.id, now=NOW)
    assert exc.value.error == "invalid_claim_code"


def test_customer_offer_is_single_use_and_targeted(db, customer):
    promotion, delivery = PromotionService(db).create_customer_offer(
        customer.id, "Thank you", 10, 30, "THANKS", "review", now=NOW
    )
    db.commit()

    assert promotion.code.startswith("THANKS")
    assert promotion.target_customer_ids == [customer.id]
    assert promotion.max_redemptions == 1
    assert promotion.end_date == NOW + timedelta(days=30)
    assert delivery.customer_id == customer.id
    assert delivery.claim_code


def test_expire_promotions(db):
    stale = make_promotion(db, end_date=NOW - timedelta(hours=1))
    current = make_promotion(db)

    assert expire_promotions(db, NOW) == {"ok": True, "expired": 1}

    db.refresh(stale)
    db.refresh(current)
    assert stale.status == "expired"
    assert current.status == "active"


def test_delete_expires_delivered_promotion(db, customer):
    promotion = make_promotion(db)
    untouched = make_promotion(db)
    service = PromotionService(db)
    service.claim_for_customer(customer.id, promotion.id, now=NOW)

    assert service.delete(promotion.id) == {"id": promotion.id, "result": "expired"}
    assert service.delete(untouched.id) == {"id": untouched.id, "result": "deleted"}
    assert db.query(Promotion).count() == 1


# ============================================================================
# HTTP
# ============================================================================


def promotion_payload(**overrides) -> dict:
    now = datetime.utcnow()
    payload = {
        "title": "Fall Refresh",
        "code": "fall20",
        "discountValue": 20,
        "status": "active",
        "startDate": (now - timedelta(days=1)).isoformat(),
        "endDate": (now + timedelta(days=30)).isoformat(),
    }
    payload.update(overrides)
    return payload


async def test_create_promotion_normalizes_code_and_rejects_duplicates(client):
    response = await client.post("/promotions", json=promotion_payload())
    assert response.status_code == 201
    assert response.json()["data"]["code"] == "FALL20"

    response = await client.post("/promotions", json=promotion_payload(code="FALL20"))
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate"


async def test_create_promotion_validates_ranges(client):
    response = await client.post("/promotions", json=promotion_payload(discountValue=150))
    assert response.status_code == 400
    assert response.json()["error"] == "validation_failed"


async def test_claim_and_redeem_over_http(client, db, customer):
    promotion_id = (await client.post("/promotions", json=promotion_payload())).json()["data"]["id"]
    job = Job(customer_id=customer.id, service_type="carpet_cleaning", total_amount=100.0)
    db.add(job)
    db.commit()

    response = await client.post(f"/customers/{customer.id}/promotions/{promotion_id}/claim")
    assert response.status_code == 201
    claim_code = response.json()["data"]["claimCode"]

    response = await client.post(f"/customers/{customer.id}/promotions/{promotion_id}/claim")
    assert response.status_code == 200
    assert response.json()["data"]["alreadyClaimed"] is True

    response = await client.post("/promotions/redeem", json={"claimCode": claim_code.lower(), "jobId": job.id})
    assert response.status_code == 200
    assert response.json()["data"]["finalAmount"] == 80.0

    listed = (await client.get(f"/customers/{customer.id}/promotions")).json()["data"]
    assert listed[0]["redeemedJobId"] == job.id
    assert listed[0]["promotion"]["currentRedemptions"] == 1
