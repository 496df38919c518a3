"""Process-wide throttle hooks for the I/O dispatch layer.

This module wires the registry and admission controller into plain
functions the dispatch code can call without carrying instances around.

Design goals:
- Minimal coupling: callers import functions only.
- Safe defaults: ``IOLIMIT_ENABLED=false`` turns every runtime hook into a
  no-op without touching configured limits.
- Dirty counters are created per tenant on first use, sized from settings.
"""

from __future__ import annotations

import logging
import threading

from iolimit.adapters.dirty.in_memory import ShardedDirtyCounter
from iolimit.core.cancellation import CancellationToken
from iolimit.core.config import settings
from iolimit.schemas.limits import LimitState
from iolimit.services.admission import AdmissionController, AdmissionResult
from iolimit.services.registry import TenantRegistry
from iolimit.throttle.dual import Domain

logger = logging.getLogger(__name__)


_lock = threading.Lock()
_controller: AdmissionController | None = None
_controller_config: tuple[int, int, int] | None = None
_dirty_counters: dict[str, ShardedDirtyCounter] = {}


def _current_config() -> tuple[int, int, int]:
    cfg = settings.throttle
    return (cfg.page_size, cfg.dirty_batch_pages, cfg.dirty_shards)


def dirty_counter(tenant: str) -> ShardedDirtyCounter:
    """Return the tenant's dirty counter, creating it on first use."""

    counter = _dirty_counters.get(tenant)
    if counter is not None:
        return counter

    with _lock:
        counter = _dirty_counters.get(tenant)
        if counter is None:
            counter = ShardedDirtyCounter(
                batch_bytes=settings.throttle.dirty_batch_bytes,
                shards=settings.throttle.dirty_shards,
                name=tenant,
            )
            _dirty_counters[tenant] = counter
    return counter


def get_controller() -> AdmissionController:
    """Return the process-wide admission controller.

    The instance is cached in-module to preserve throttle state across calls.
    If the sizing configuration changes (primarily in tests), the controller,
    its registry and all dirty counters are rebuilt.

    Returns:
        AdmissionController: Configured controller instance.
    """

    global _controller, _controller_config

    config = _current_config()
    with _lock:
        if _controller is None or _controller_config != config:
            if _controller is not None:
                logger.info("hooks.rebuilt", extra={"tenants": len(_controller.registry)})
                _dirty_counters.clear()
            _controller = AdmissionController(
                TenantRegistry(ceilings=settings.throttle),
                dirty_counters=_dirty_counters.get,
            )
            _controller_config = config
        return _controller


def get_registry() -> TenantRegistry:
    return get_controller().registry


def reset() -> None:
    """Forget all tenants and counters; the next call rebuilds from settings."""

    global _controller, _controller_config

    with _lock:
        _controller = None
        _controller_config = None
        _dirty_counters.clear()


def set_limit(
    tenant: str,
    domain: Domain | str,
    speed: int,
    burst: int = 0,
    latency_ms: int = 0,
) -> LimitState:
    return get_registry().set_limit(tenant, domain, speed, burst, latency_ms)


def get_limit(tenant: str, domain: Domain | str) -> LimitState:
    return get_registry().get_limit(tenant, domain)


def remove(tenant: str) -> bool:
    """Drop the tenant's throttle and its dirty counter."""

    removed = get_registry().remove(tenant)
    with _lock:
        _dirty_counters.pop(tenant, None)
    return removed


def pre_admit(
    tenant: str,
    *,
    cancel: CancellationToken | None = None,
    exempt: bool = False,
) -> AdmissionResult:
    if not settings.throttle.enabled:
        return AdmissionResult(tenant=tenant)
    return get_controller().pre_admit(tenant, cancel=cancel, exempt=exempt)


def congestion_check(tenant: str) -> bool:
    if not settings.throttle.enabled:
        return False
    return get_controller().congestion_check(tenant)


def account(tenant: str, nbytes: int) -> None:
    if settings.throttle.enabled:
        get_controller().account(tenant, nbytes)


def charge_op(tenant: str, *, exempt: bool = False) -> None:
    if settings.throttle.enabled:
        get_controller().charge_op(tenant, exempt=exempt)


def balance_dirty(tenant: str, pending_bytes: int) -> bool:
    if not settings.throttle.enabled:
        return False
    return get_controller().balance_dirty(tenant, pending_bytes)
