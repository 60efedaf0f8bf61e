from __future__ import annotations

from typing import Any, Collection

from pydantic import BaseModel, ConfigDict, Field, field_validator

VM_COUNT = "vm_count"
MEMORY_BYTES_SUM = "memory_bytes_sum"
CPU_COUNT_SUM = "cpu_count_sum"
ROOT_VOLUME_BYTES_SUM = "root_volume_bytes_sum"
DATA_VOLUME_BYTES_SUM = "data_volume_bytes_sum"

FIXED_COUNTERS: tuple[str, ...] = (
    VM_COUNT,
    MEMORY_BYTES_SUM,
    CPU_COUNT_SUM,
    ROOT_VOLUME_BYTES_SUM,
    DATA_VOLUME_BYTES_SUM,
)

MIB = 1024 * 1024

UsageSnapshot = dict[str, int]


def counter_key(offering_name: str) -> str:
    """Offering names become counter keys with spaces replaced by underscores."""
    return offering_name.strip().replace(" ", "_")


def service_offering_key(offering_name: str) -> str:
    key = offering_name
    return f"service_{key}" if key in FIXED_COUNTERS else key


def disk_offering_key(offering_name: str, taken: Collection[str] = ()) -> str:
    """Disk offerings colliding with a fixed counter or a service offering get a ``disk_`` prefix."""
    key = counter_key(offering_name)
    while key in FIXED_COUNTERS or key in taken:
        key = f"disk_{key}"
    return key


def _as_count(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"counter is not a number: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"counter is not a whole number: {value!r}")
        number = int(value)
    else:
        text = str(value).strip()
        try:
            number = int(text)
        except ValueError:
            # "1024.0" style strings; fractions are still rejected.
            return _as_count(float(text))
    if number < 0:
        raise ValueError("counters cannot be negative")
    return number


class _CoercingPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class VirtualMachinePayload(_CoercingPayload):
    """Subset of a ``listVirtualMachines`` entry the usage counters need."""

    memory: int = 0  # MiB
    cpunumber: int = 0
    serviceofferingname: str | None = None

    @field_validator("memory", "cpunumber", mode="before")
    @classmethod
    def coerce_counts(cls, value: Any) -> int:
        return _as_count(value)

    @property
    def memory_bytes(self) -> int:
        return self.memory * MIB


class VolumePayload(_CoercingPayload):
    """Subset of a ``listVolumes`` entry the usage counters need."""

    kind: str = Field(default="", alias="type")
    size: int = 0  # bytes
    diskofferingname: str | None = None

    @field_validator("size", mode="before")
    @classmethod
    def coerce_size(cls, value: Any) -> int:
        return _as_count(value)

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, value: Any) -> str:
        return str(value or "").strip().upper()
