"""
mock_payment_gateway.py — Mock Implementation of the KoraPay Charge API

This module provides a simulated payment provider for local development of
the storefront checkout. It exposes a small FastAPI application that mimics
KoraPay's hosted-checkout initialization and can fire signed webhooks back at
the storefront.

Simulation Scenarios (chosen by the customer name of the charge):
    • Any name → charge initialized, checkout URL returned
    • Starts with "decline_" → charge rejected (HTTP 400)
    • Starts with "timeout_" → response delayed past the storefront's read timeout

Endpoints:
    POST /merchant/api/v1/charges/initialize — Initializes a charge.
    POST /simulate/webhook — Sends a signed webhook for a known reference.

Port:
    Default: 8001 (HTTP)
"""

import asyncio
import json
import logging
import os

import httpx
from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

from storefront.payments import sign_payload

app = FastAPI(title="Mock KoraPay")
logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

STOREFRONT_WEBHOOK_URL = os.environ.get("STOREFRONT_WEBHOOK_URL", "http://localhost:4000/payment/webhook")
WEBHOOK_SECRET = os.environ.get("KORAPAY_WEBHOOK_SECRET", "mock_secret")
CHECKOUT_BASE_URL = os.environ.get("MOCK_CHECKOUT_BASE_URL", "http://localhost:8001/checkout")

charges = {}


class Customer(BaseModel):
    email: str
    name: str


class ChargeRequest(BaseModel):
    """
    Represents a charge initialization payload.

    Attributes:
        amount (int): Amount in the store currency.
        currency (str): ISO 4217 currency code (e.g. 'NGN').
        reference (str): Merchant reference of the order, unique per charge.
        customer (Customer): Name and e-mail shown on the checkout page.
    """
    amount: int
    currency: str
    reference: str
    redirect_url: str = ""
    notification_url: str = ""
    narration: str = ""
    customer: Customer
    metadata: dict = {}


class SimulateWebhookRequest(BaseModel):
    reference: str
    status: str = "success"
    event: str = "charge.success"


@app.post("/merchant/api/v1/charges/initialize")
async def initialize_charge(request: ChargeRequest, authorization: str = Header("")):
    """
    Initializes a hosted checkout charge.

    Returns:
        dict: KoraPay-style envelope with `data.checkout_url` and `data.reference`.

    Raises:
        HTTPException(401): If no bearer token is sent.
        HTTPException(400): If the customer name triggers the decline scenario.
    """
    log.info(f"[PS] Charge initialization for {request.reference} ({request.amount} {request.currency})")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail={"status": False, "message": "Unauthorized"})

    if request.customer.name.startswith("decline_"):
        log.warning(f"[PS] Charge {request.reference} declined.")
        raise HTTPException(status_code=400, detail={"status": False, "message": "Charge declined"})

    if request.customer.name.startswith("timeout_"):
        log.info(f"[PS] Simulating timeout for {request.reference}...")
        await asyncio.sleep(12)

    charges[request.reference] = request
    return {
        "status": True,
        "message": "Charge created successfully",
        "data": {
            "reference": request.reference,
            "checkout_url": f"{CHECKOUT_BASE_URL}/{request.reference}",
        },
    }


@app.post("/simulate/webhook")
async def simulate_webhook(request: SimulateWebhookRequest):
    """
    Signs a webhook body for a previously initialized charge and posts it to the storefront.

    Returns:
        dict: The storefront's status code and JSON answer.
    """
    if request.reference not in charges:
        raise HTTPException(status_code=404, detail="Unknown reference")

    body = json.dumps({
        "event": request.event,
        "data": {"reference": request.reference, "status": request.status},
    }).encode()
    headers = {
        "content-type": "application/json",
        "x-korapay-signature": sign_payload(body, WEBHOOK_SECRET),
    }
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.post(STOREFRONT_WEBHOOK_URL, content=body, headers=headers)
    log.info(f"[PS] Webhook for {request.reference} answered {response.status_code}.")
    return {"statusCode": response.status_code, "response": response.json()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
