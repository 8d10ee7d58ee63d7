"""Request-scoped access to the service graph held on app.state."""

from fastapi import Request

from billing_engine.services.container import BillingServices


def get_services(request: Request) -> BillingServices:
    return request.app.state.billing
