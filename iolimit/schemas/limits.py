"""Pydantic schemas for throttle limits."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from iolimit.core.config import U32_MAX, U64_MAX


class LimitSpec(BaseModel):
    """Validated limit values for one domain.

    Wire ranges follow the administrative interface: speed and burst are
    unsigned 64-bit, the latency bound is an unsigned 32-bit millisecond count.
    """

    model_config = ConfigDict(frozen=True)

    speed: int = Field(
        ...,
        ge=0,
        le=U64_MAX,
        description="Units per second (bytes or operations); 0 disables the domain.",
    )
    burst: int = Field(
        0,
        ge=0,
        le=U64_MAX,
        description="Credit allowed above the size of the charge being satisfied.",
    )
    latency_ms: int = Field(
        0,
        ge=0,
        le=U32_MAX,
        description="Maximum time a single charge may force a caller to wait.",
    )


class LimitState(LimitSpec):
    """Snapshot of a tenant's configured limits for one domain."""

    tenant: str = Field(..., description="Tenant the limits belong to.")
    domain: str = Field(..., description="'bandwidth' or 'iops'.")
