"""
Verification & Payment Provider interface

The engine never computes verification and never moves money itself; it
talks to an external wallet/identity provider through this protocol. No
network transport is implemented here.

Transfers are keyed by a reference the engine chooses and stores on the
claim entry before the provider is contacted:
1. transfer() pays out under that reference, resolving once it settles;
   repeating a reference must not pay twice
2. cancel_transfer() makes sure a transfer that reported failure can no
   longer settle; the claim is only reversed after a successful cancel
"""

import logging
from decimal import Decimal
from typing import Protocol

from src.exceptions import ProviderError

logger = logging.getLogger(__name__)


class RewardProvider(Protocol):
    """External verification and payment provider"""

    async def is_verified(self, identity: str) -> bool:
        ...

    async def transfer(self, identity: str, amount: Decimal, reference: str) -> None:
        ...

    async def cancel_transfer(self, reference: str) -> None:
        ...


class SimulatedRewardProvider:
    """
    Provider stand-in for development and tests

    Verification status and transfer outcomes are set up front; every
    transfer settles unless its identity is listed in `failing_identities`.
    """

    service_name = "simulated provider"

    def __init__(self, verified_identities: set[str] | None = None, failing_identities: set[str] | None = None):
        self.verified_identities = set(verified_identities or ())
        self.failing_identities = set(failing_identities or ())
        self.transfers: dict[str, tuple[str, Decimal]] = {}
        self.cancelled: set[str] = set()

    async def is_verified(self, identity: str) -> bool:
        return identity in self.verified_identities

    async def transfer(self, identity: str, amount: Decimal, reference: str) -> None:
        if reference in self.transfers:
            logger.info(f"[SIMULATED] Transfer {reference} already submitted")
        else:
            self.transfers[reference] = (identity, amount)
            logger.info(f"[SIMULATED] Submitted transfer {reference}: {amount} WLD to {identity}")

        if identity in self.failing_identities:
            raise ProviderError(
                message=f"Transfer {reference} was rejected",
                service=self.service_name,
                user_id=identity,
                operation="transfer",
            )
        logger.info(f"[SIMULATED] Transfer {reference} settled")

    async def cancel_transfer(self, reference: str) -> None:
        if reference not in self.transfers:
            raise ProviderError(message=f"Unknown transfer reference {reference}", service=self.service_name)
        self.cancelled.add(reference)
        logger.info(f"[SIMULATED] Transfer {reference} cancelled")
