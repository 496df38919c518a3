"""Unit tests for the tenant registry (set/get limits)."""

import threading
from unittest.mock import Mock

import pytest

from iolimit.core.config import ThrottleSettings
from iolimit.core.errors import InvalidArgumentError, NotFoundError, ResourceExhaustedError
from iolimit.services.registry import TenantRegistry
from iolimit.throttle.dual import Domain, DualThrottle


@pytest.fixture
def registry() -> TenantRegistry:
    return TenantRegistry(clock=Mock(return_value=0), ceilings=ThrottleSettings())


def test_get_limit_returns_what_was_set(registry: TenantRegistry) -> None:
    registry.set_limit("ct-101", "bandwidth", speed=100, burst=50, latency_ms=200)

    state = registry.get_limit("ct-101", "bandwidth")

    assert (state.speed, state.burst, state.latency_ms) == (100, 50, 200)
    assert state.tenant == "ct-101"
    assert state.domain == "bandwidth"


def test_throttle_created_lazily_and_shared_by_domains(registry: TenantRegistry) -> None:
    assert registry.get("ct-101") is None

    registry.set_limit("ct-101", Domain.IOPS, speed=10)
    throttle = registry.get("ct-101")
    registry.set_limit("ct-101", Domain.BANDWIDTH, speed=1000)

    assert registry.get("ct-101") is throttle
    assert registry.tenants() == ["ct-101"]
    assert len(registry) == 1


def test_get_limit_for_unknown_tenant(registry: TenantRegistry) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        registry.get_limit("ghost", "iops")
    assert exc_info.value.code == "throttle_not_found"


def test_get_limit_of_unset_domain_is_zero(registry: TenantRegistry) -> None:
    registry.set_limit("ct-101", "iops", speed=10, burst=1, latency_ms=5)

    state = registry.get_limit("ct-101", "bandwidth")

    assert (state.speed, state.burst, state.latency_ms) == (0, 0, 0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"speed": -1},
        {"speed": 2**64},
        {"speed": 1, "burst": -5},
        {"speed": 1, "latency_ms": 2**32},
        {"speed": 1, "latency_ms": -1},
    ],
)
def test_out_of_range_values_rejected(registry: TenantRegistry, kwargs: dict) -> None:
    with pytest.raises(InvalidArgumentError) as exc_info:
        registry.set_limit("ct-101", "bandwidth", **kwargs)

    assert exc_info.value.code == "invalid_limit"
    assert "ct-101" not in registry


def test_unknown_domain_rejected(registry: TenantRegistry) -> None:
    with pytest.raises(InvalidArgumentError):
        registry.set_limit("ct-101", "latency", speed=1)
    assert "ct-101" not in registry


def test_u64_speed_accepted(registry: TenantRegistry) -> None:
    registry.set_limit("ct-101", "bandwidth", speed=2**64 - 1, burst=2**64 - 1, latency_ms=2**32 - 1)

    state = registry.get_limit("ct-101", "bandwidth")
    assert state.speed == 2**64 - 1
    assert state.latency_ms == 2**32 - 1


def test_configured_ceilings_enforced() -> None:
    registry = TenantRegistry(ceilings=ThrottleSettings(max_speed=1000, max_latency_ms=500))

    registry.set_limit("ct-101", "bandwidth", speed=1000, latency_ms=500)
    with pytest.raises(InvalidArgumentError) as exc_info:
        registry.set_limit("ct-101", "bandwidth", speed=1001)

    assert exc_info.value.details["field"] == "speed"
    assert exc_info.value.details["max_value"] == 1000


def test_allocation_failure_is_resource_exhausted() -> None:
    factory = Mock(side_effect=MemoryError)
    registry = TenantRegistry(throttle_factory=factory)

    with pytest.raises(ResourceExhaustedError):
        registry.set_limit("ct-101", "iops", speed=10)
    assert "ct-101" not in registry


def test_update_limit_keeps_other_fields(registry: TenantRegistry) -> None:
    registry.set_limit("ct-101", "iops", speed=10, burst=5, latency_ms=100)

    state = registry.update_limit("ct-101", "iops", burst=20)

    assert (state.speed, state.burst, state.latency_ms) == (10, 20, 100)


def test_update_limit_on_new_tenant_starts_from_zero(registry: TenantRegistry) -> None:
    state = registry.update_limit("ct-202", "bandwidth", speed=4096)

    assert (state.speed, state.burst, state.latency_ms) == (4096, 0, 0)


def test_remove_disables_and_forgets(registry: TenantRegistry) -> None:
    registry.set_limit("ct-101", "bandwidth", speed=1000, latency_ms=100)
    throttle = registry.get("ct-101")

    assert registry.remove("ct-101") is True
    assert registry.remove("ct-101") is False
    assert registry.get("ct-101") is None
    assert throttle.enabled is False


def test_remove_during_set_limit_waits_for_it() -> None:
    removers: list[threading.Thread] = []
    configured: list[DualThrottle] = []

    class RacingThrottle(DualThrottle):
        def configure(self, *args) -> None:
            remover = threading.Thread(target=registry.remove, args=("ct-101",))
            remover.start()
            remover.join(timeout=0.05)
            removers.append(remover)
            configured.append(self)
            super().configure(*args)

    registry = TenantRegistry(clock=Mock(return_value=0), throttle_factory=RacingThrottle)

    registry.set_limit("ct-101", "bandwidth", speed=1000, latency_ms=100)
    throttle = configured[0]
    removers[0].join(timeout=3.0)

    # The removal lands after the configure, never on an orphan.
    assert not removers[0].is_alive()
    assert "ct-101" not in registry
    assert throttle.limits(Domain.BANDWIDTH) == (0, 0, 0)
