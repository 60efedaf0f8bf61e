"""Fleet usage counters with zero-fill against the persisted baseline."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from cloudstack_node.clients.cloudstack import CloudStackAPI
from cloudstack_node.entities.usage import (
    CPU_COUNT_SUM,
    DATA_VOLUME_BYTES_SUM,
    FIXED_COUNTERS,
    MEMORY_BYTES_SUM,
    ROOT_VOLUME_BYTES_SUM,
    VM_COUNT,
    UsageSnapshot,
    VirtualMachinePayload,
    VolumePayload,
    disk_offering_key,
    service_offering_key,
)

logger = logging.getLogger(__name__)

ROOT = "ROOT"
DATADISK = "DATADISK"


@dataclass(frozen=True)
class UsageResult:
    usage: UsageSnapshot
    baseline_keys: frozenset[str]


def seed_counters(baseline_keys: Iterable[str]) -> UsageSnapshot:
    counters: UsageSnapshot = {key: 0 for key in FIXED_COUNTERS}
    for key in baseline_keys:
        counters.setdefault(key, 0)
    return counters


class UsageAggregator:
    def __init__(self, client: CloudStackAPI):
        self.client = client

    def snapshot(self, baseline_keys: Iterable[str], domain_id: str | None) -> UsageResult:
        """Compute the usage counters for ``domain_id``.

        Both collections are fetched before anything is counted, so a failing
        call leaves no partial result behind.
        """
        baseline = frozenset(baseline_keys)
        vms = [VirtualMachinePayload.model_validate(item) for item in self.client.list_virtual_machines(domain_id) or []]
        volumes = [VolumePayload.model_validate(item) for item in self.client.list_volumes(domain_id) or []]

        usage = seed_counters(baseline)
        per_service: dict[str, int] = {}
        per_disk: dict[str, int] = {}

        for vm in vms:
            usage[VM_COUNT] += 1
            usage[MEMORY_BYTES_SUM] += vm.memory_bytes
            usage[CPU_COUNT_SUM] += vm.cpunumber
            if vm.serviceofferingname:
                key = service_offering_key(vm.serviceofferingname)
                per_service[key] = per_service.get(key, 0) + 1

        for volume in volumes:
            if volume.kind == ROOT:
                usage[ROOT_VOLUME_BYTES_SUM] += volume.size
            elif volume.kind == DATADISK:
                usage[DATA_VOLUME_BYTES_SUM] += volume.size
                if volume.diskofferingname:
                    key = disk_offering_key(volume.diskofferingname, taken=per_service)
                    per_disk[key] = per_disk.get(key, 0) + 1

        # Instances are listed first, so every service key is known before disk keys are chosen.
        usage.update(per_service)
        usage.update(per_disk)

        zero_filled = sorted(key for key in baseline if usage[key] == 0 and key not in FIXED_COUNTERS)
        if zero_filled:
            logger.debug("zero-filled counters: %s", ", ".join(zero_filled))
        logger.info(
            "usage snapshot vms=%d volumes=%d counters=%d",
            len(vms), len(volumes), len(usage),
        )
        return UsageResult(usage=usage, baseline_keys=baseline | frozenset(usage))
